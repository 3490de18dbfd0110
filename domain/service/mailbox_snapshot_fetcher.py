from __future__ import annotations

import structlog
from typing import Generator, List

from application.dto.mailbox_dto import MailboxDTO
from application.dto.session_dto import JmapSessionDTO
from domain.model.changes import MailboxSnapshot
from domain.model.sync_errors import PermanentProtocolError
from domain.service.jmap_responses import as_list, mailbox_from_api, unwrap_response
from ports.jmap_client import JmapClientPort

logger = structlog.get_logger(__name__).bind(service="mailbox_snapshot")


class MailboxSnapshotFetcher:
    """
    Lista completa das mailboxes via `Mailbox/get` com `ids: null`.
    Usado quando não há estado salvo e como fallback do delta.
    """

    def __init__(self, jmap_client: JmapClientPort) -> None:
        self.jmap_client = jmap_client

    def fetch_all(self, session: JmapSessionDTO) -> MailboxSnapshot:
        log = logger.bind(account=session.account_id)
        log.info("snapshot.start")

        mailboxes: List[MailboxDTO] = []
        state: str | None = None
        for page in self._pages(session):
            mailboxes.extend(mailbox_from_api(item) for item in as_list(page, "list"))
            state = page.get("state")

        if not isinstance(state, str):
            raise PermanentProtocolError("Mailbox/get response without state")

        log.info("snapshot.success", total=len(mailboxes), state=state)
        return MailboxSnapshot(mailboxes=mailboxes, state=state)

    def _pages(self, session: JmapSessionDTO) -> Generator[dict, None, None]:
        # Mailbox/get não pagina: o servidor devolve tudo numa resposta.
        responses = self.jmap_client.call(
            session,
            [("Mailbox/get", {"accountId": session.account_id, "ids": None}, "g0")],
        )
        yield unwrap_response(responses, "Mailbox/get", "g0")
