from typing import Dict, Optional

from domain.model.folder import FolderType

_ROLE_TO_TYPE: Dict[str, FolderType] = {
    "inbox": FolderType.INBOX,
    "archive": FolderType.ARCHIVE,
    "drafts": FolderType.DRAFTS,
    "sent": FolderType.SENT,
    "trash": FolderType.TRASH,
}


def classify(role: Optional[str]) -> FolderType:
    """Traduz o `role` JMAP da mailbox para o tipo local. Nunca falha."""
    if not role:
        return FolderType.REGULAR
    return _ROLE_TO_TYPE.get(role.strip().lower(), FolderType.REGULAR)
