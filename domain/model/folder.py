from __future__ import annotations
from dataclasses import dataclass
from enum import Enum


class FolderType(str, Enum):
    INBOX = "inbox"
    ARCHIVE = "archive"
    DRAFTS = "drafts"
    SENT = "sent"
    TRASH = "trash"
    REGULAR = "regular"


@dataclass(frozen=True)
class Folder:
    server_id: str
    name: str
    type: FolderType = FolderType.REGULAR
