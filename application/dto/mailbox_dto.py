from dataclasses import dataclass
from typing import Optional

@dataclass
class MailboxDTO:
    id: str
    name: str
    role: Optional[str] = None
