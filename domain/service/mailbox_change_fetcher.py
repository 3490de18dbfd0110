from __future__ import annotations

import structlog
from typing import Any, Dict, Generator, List, Optional, Union

from application.dto.session_dto import JmapSessionDTO
from domain.model.changes import CannotCalculateChanges, ChangePage, ChangeSet
from domain.model.sync_errors import PermanentProtocolError
from domain.service.jmap_responses import (
    CANNOT_CALCULATE_CHANGES,
    as_id_list,
    as_list,
    find_response,
    mailbox_from_api,
    method_error_type,
    unwrap_response,
)
from ports.jmap_client import JmapClientPort, MethodCall

logger = structlog.get_logger(__name__).bind(service="mailbox_changes")


class MailboxChangeFetcher:
    """
    Busca o delta desde `since_state`, seguindo `hasMoreChanges` até o fim
    e acumulando as páginas num único `ChangeSet`.

    Cada página é um único request JMAP: `Mailbox/changes` mais dois
    `Mailbox/get` com back-reference para `/created` e `/updated`.
    """

    def __init__(self, jmap_client: JmapClientPort, max_changes: Optional[int] = None) -> None:
        self.jmap_client = jmap_client
        self.max_changes = max_changes

    def fetch_changes(
        self, session: JmapSessionDTO, since_state: str
    ) -> Union[ChangeSet, CannotCalculateChanges]:
        log = logger.bind(account=session.account_id, since_state=since_state)
        log.info("changes.start")

        change_set = ChangeSet(new_state=since_state)
        pages = 0
        for page in self._pages(session, since_state, log):
            if isinstance(page, CannotCalculateChanges):
                log.warning("changes.cannot_calculate", description=page.description)
                return page
            change_set.merge(page)
            pages += 1

        log.info(
            "changes.success",
            pages=pages,
            new_state=change_set.new_state,
            created=len(change_set.created),
            updated=len(change_set.updated),
            destroyed=len(change_set.destroyed),
        )
        return change_set

    # --------------------------------------------------------------------- #
    #   Helpers privados                                                    #
    # --------------------------------------------------------------------- #
    def _pages(
        self, session: JmapSessionDTO, since_state: str, log
    ) -> Generator[Union[ChangePage, CannotCalculateChanges], None, None]:
        """Itera sobre as páginas do delta, evitando loops de estado."""
        state = since_state
        seen: set[str] = set()

        while True:
            if state in seen:
                log.error("changes.pagination.loop_detected", state=state)
                raise PermanentProtocolError(
                    f"Server repeated state {state} while reporting more changes"
                )
            seen.add(state)

            log.debug("changes.pagination.page", num=len(seen), state=state)
            page = self._fetch_page(session, state)
            yield page
            if isinstance(page, CannotCalculateChanges) or not page.has_more:
                return
            state = page.new_state

    def _fetch_page(
        self, session: JmapSessionDTO, since_state: str
    ) -> Union[ChangePage, CannotCalculateChanges]:
        responses = self.jmap_client.call(session, self._method_calls(session, since_state))

        name, args = find_response(responses, "c0")
        if method_error_type(name, args) == CANNOT_CALCULATE_CHANGES:
            return CannotCalculateChanges(since_state, args.get("description"))

        changes = unwrap_response(responses, "Mailbox/changes", "c0")
        created = unwrap_response(responses, "Mailbox/get", "c1")
        updated = unwrap_response(responses, "Mailbox/get", "c2")

        new_state = changes.get("newState")
        has_more = changes.get("hasMoreChanges", False)
        destroyed = as_id_list(changes, "destroyed")
        if not isinstance(new_state, str) or not isinstance(has_more, bool):
            raise PermanentProtocolError("Malformed Mailbox/changes response")

        # Mailbox removida entre o changes e o get: tratar como destruída.
        not_found = as_id_list(created, "notFound") + as_id_list(updated, "notFound")

        return ChangePage(
            new_state=new_state,
            has_more=has_more,
            created=[mailbox_from_api(item) for item in as_list(created, "list")],
            updated=[mailbox_from_api(item) for item in as_list(updated, "list")],
            destroyed=destroyed + not_found,
        )

    def _method_calls(self, session: JmapSessionDTO, since_state: str) -> List[MethodCall]:
        changes_args: Dict[str, Any] = {"accountId": session.account_id, "sinceState": since_state}
        if self.max_changes:
            changes_args["maxChanges"] = self.max_changes

        def _get_by_ref(path: str) -> Dict[str, Any]:
            return {
                "accountId": session.account_id,
                "#ids": {"resultOf": "c0", "name": "Mailbox/changes", "path": path},
            }

        return [
            ("Mailbox/changes", changes_args, "c0"),
            ("Mailbox/get", _get_by_ref("/created"), "c1"),
            ("Mailbox/get", _get_by_ref("/updated"), "c2"),
        ]
