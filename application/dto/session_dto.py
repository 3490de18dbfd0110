from dataclasses import dataclass, field
from typing import Any, Dict

@dataclass(frozen=True)
class JmapSessionDTO:
    account_id: str
    api_url: str
    capabilities: Dict[str, Any] = field(default_factory=dict)
    state: str | None = None
