from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from domain.model.sync_errors import FolderSyncError, SyncErrorKind


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    FALLBACK = "fallback"


@dataclass
class RefreshResult:
    """
    Resultado público de um refresh da lista de pastas.

    Em caso de falha `error_kind` diz se vale tentar de novo
    (`TRANSPORT`) ou não (`AUTHENTICATION`, `PERMANENT_PROTOCOL`).
    """

    account: Optional[str] = None
    mode: Optional[SyncMode] = None
    state: Optional[str] = None
    created: int = 0
    updated: int = 0
    deleted: int = 0
    error: Optional[FolderSyncError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[SyncErrorKind]:
        return self.error.kind if self.error else None

    @property
    def permanent_failure(self) -> bool:
        return bool(self.error and self.error.permanent)

    @classmethod
    def failure(cls, error: FolderSyncError, account: Optional[str] = None) -> "RefreshResult":
        return cls(account=account, error=error)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "mode": self.mode.value if self.mode else None,
            "state": self.state,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }
