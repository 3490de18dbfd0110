from __future__ import annotations

import structlog
from typing import Iterable, List, Optional, Set, Tuple

from application.dto.mailbox_dto import MailboxDTO
from application.dto.refresh_result_dto import RefreshResult, SyncMode
from application.dto.session_dto import JmapSessionDTO
from domain.model.changes import CannotCalculateChanges, ChangeSet, MailboxSnapshot
from domain.model.folder import Folder
from domain.model.sync_errors import FolderSyncError
from domain.service.folder_type_classifier import classify
from domain.service.mailbox_change_fetcher import MailboxChangeFetcher
from domain.service.mailbox_snapshot_fetcher import MailboxSnapshotFetcher
from ports.jmap_client import JmapClientPort
from ports.persistence import SYNC_STATE_KEY, FolderStoragePort

logger = structlog.get_logger(__name__).bind(use_case="refresh_folder_list")

_Diff = Tuple[List[Folder], List[Folder], List[str]]


class RefreshFolderList:
    """
    Sincroniza a lista de pastas de UMA conta com o servidor JMAP.

    Fluxo: sessão → estado salvo → delta (`Mailbox/changes`) ou lista
    completa (`Mailbox/get`) → aplica o diff → grava o novo estado.
    A sessão pode vir pronta (`session`), evitando uma segunda descoberta.
    Se o servidor não consegue calcular o delta, cai uma única vez para a
    lista completa. O estado só é gravado junto com o diff aplicado.
    """

    def __init__(
        self,
        jmap_client: JmapClientPort,
        storage: FolderStoragePort,
        snapshot_fetcher: Optional[MailboxSnapshotFetcher] = None,
        change_fetcher: Optional[MailboxChangeFetcher] = None,
        account: Optional[str] = None,
        session: Optional[JmapSessionDTO] = None,
    ) -> None:
        self.jmap_client = jmap_client
        self.storage = storage
        self.snapshot_fetcher = snapshot_fetcher or MailboxSnapshotFetcher(jmap_client)
        self.change_fetcher = change_fetcher or MailboxChangeFetcher(jmap_client)
        self.account = account
        self.session = session

    # ------------------------------------------------------------------ #
    #  API pública                                                       #
    # ------------------------------------------------------------------ #
    def execute(self) -> RefreshResult:
        log = logger.new(account=self.account)
        log.info("refresh.start")
        try:
            result = self._refresh(log)
        except FolderSyncError as exc:
            log.error(
                "refresh.error",
                error_kind=exc.kind.value,
                permanent=exc.permanent,
                error=str(exc),
            )
            return RefreshResult.failure(exc, account=self.account)

        log.info("refresh.success", **result.to_dict())
        return result

    # ------------------------------------------------------------------ #
    #  Máquina de estados                                                #
    # ------------------------------------------------------------------ #
    def _refresh(self, log) -> RefreshResult:
        session = self.session or self.jmap_client.fetch_session()
        log = log.bind(account=session.account_id)

        since_state = self.storage.get_extra_string(SYNC_STATE_KEY)
        if since_state is None:
            log.info("refresh.full_sync", reason="no_state")
            return self._full_sync(session, SyncMode.FULL)

        log.info("refresh.incremental_sync", since_state=since_state)
        changes = self.change_fetcher.fetch_changes(session, since_state)
        if isinstance(changes, CannotCalculateChanges):
            log.warning("refresh.fallback_full_sync", since_state=since_state)
            return self._full_sync(session, SyncMode.FALLBACK)

        return self._apply_changes(session, changes)

    def _full_sync(self, session: JmapSessionDTO, mode: SyncMode) -> RefreshResult:
        snapshot = self.snapshot_fetcher.fetch_all(session)
        return self._commit(session, mode, snapshot.state, self._diff_snapshot(snapshot))

    def _apply_changes(self, session: JmapSessionDTO, changes: ChangeSet) -> RefreshResult:
        if changes.is_empty:
            logger.info("refresh.no_changes", account=session.account_id, state=changes.new_state)
        return self._commit(
            session, SyncMode.INCREMENTAL, changes.new_state, self._diff_changes(changes)
        )

    def _commit(
        self, session: JmapSessionDTO, mode: SyncMode, new_state: str, diff: _Diff
    ) -> RefreshResult:
        to_create, to_update, to_delete = diff
        with self.storage.transaction():
            if to_create:
                self.storage.create_folders(to_create)
            if to_update:
                self.storage.update_folders(to_update)
            if to_delete:
                self.storage.delete_folders(to_delete)
            self.storage.set_extra_string(SYNC_STATE_KEY, new_state)

        return RefreshResult(
            account=session.account_id,
            mode=mode,
            state=new_state,
            created=len(to_create),
            updated=len(to_update),
            deleted=len(to_delete),
        )

    # ------------------------------------------------------------------ #
    #  Diff                                                              #
    # ------------------------------------------------------------------ #
    def _diff_snapshot(self, snapshot: MailboxSnapshot) -> _Diff:
        local_ids = self.storage.get_folder_server_ids()
        remote = {mailbox.id: mailbox for mailbox in snapshot.mailboxes}

        to_create = _to_folders(m for sid, m in remote.items() if sid not in local_ids)
        to_update = _to_folders(m for sid, m in remote.items() if sid in local_ids)
        to_delete = sorted(local_ids - remote.keys())
        return to_create, to_update, to_delete

    def _diff_changes(self, changes: ChangeSet) -> _Diff:
        # O servidor já expressou o delta; só reclassificamos ids que o
        # estado local desmente (delta reaplicado após falha).
        local_ids: Set[str] = self.storage.get_folder_server_ids()
        touched = [changes.mailboxes[sid] for sid in changes.created | changes.updated]

        to_create = _to_folders(m for m in touched if m.id not in local_ids)
        to_update = _to_folders(m for m in touched if m.id in local_ids)
        to_delete = sorted(changes.destroyed & local_ids)
        return to_create, to_update, to_delete


def _to_folders(mailboxes: Iterable[MailboxDTO]) -> List[Folder]:
    folders = [Folder(server_id=m.id, name=m.name, type=classify(m.role)) for m in mailboxes]
    return sorted(folders, key=lambda f: f.server_id)
