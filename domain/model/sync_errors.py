from __future__ import annotations
from enum import Enum


class SyncErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    PERMANENT_PROTOCOL = "permanent_protocol"
    TRANSPORT = "transport"


class FolderSyncError(Exception):
    """Base de todas as falhas que atravessam a fronteira do motor."""

    kind: SyncErrorKind = SyncErrorKind.PERMANENT_PROTOCOL
    permanent: bool = True

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(FolderSyncError):
    """Credenciais rejeitadas (HTTP 401). Reautenticar antes de tentar de novo."""

    kind = SyncErrorKind.AUTHENTICATION
    permanent = True


class PermanentProtocolError(FolderSyncError):
    """Resposta malformada ou inesperada; repetir às cegas não adianta."""

    kind = SyncErrorKind.PERMANENT_PROTOCOL
    permanent = True


class TransportError(FolderSyncError):
    """Falha de conexão, timeout ou indisponibilidade temporária do servidor."""

    kind = SyncErrorKind.TRANSPORT
    permanent = False
