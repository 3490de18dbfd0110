import argparse
import sys
from typing import List, Optional

import requests
import structlog

from adapters.jmap.jmap_api_client import JmapApiClient
from adapters.repository.sql_folder_repository import SqlFolderRepository
from application.dto.refresh_result_dto import RefreshResult
from application.usecase.refresh_folder_list import RefreshFolderList
from domain.model.sync_errors import FolderSyncError
from domain.service.mailbox_change_fetcher import MailboxChangeFetcher
from config.settings import DB_URL, JMAP_ACCOUNTS, JMAP_MAX_CHANGES, LOG_LEVEL
from config.logging import configure_logging

logger = structlog.get_logger(__name__)

EXIT_TRANSIENT_FAILURE = 1
EXIT_PERMANENT_FAILURE = 2

def make_job(
    account: Optional[str],
    db_url: str = DB_URL,
    http: Optional[requests.Session] = None,
) -> RefreshFolderList:
    logger.info("boot.make_job", account=account)

    jmap_client    = JmapApiClient(account_id=account, http=http)
    change_fetcher = MailboxChangeFetcher(jmap_client, max_changes=JMAP_MAX_CHANGES)
    session        = None
    if account is None:
        # Conta primária: o id só é conhecido depois da sessão.
        session = jmap_client.fetch_session()
        account = jmap_client.account_id = session.account_id
    storage        = SqlFolderRepository(db_url, account)
    return RefreshFolderList(
        jmap_client, storage, change_fetcher=change_fetcher, account=account, session=session
    )

def run_once(
    accounts: List[Optional[str]],
    db_url: str = DB_URL,
    http: Optional[requests.Session] = None,
) -> List[RefreshResult]:
    results: List[RefreshResult] = []
    for account in accounts:
        try:
            job = make_job(account, db_url=db_url, http=http)
        except FolderSyncError as exc:
            logger.error("boot.make_job.error", account=account, error_kind=exc.kind.value)
            results.append(RefreshResult.failure(exc, account=account))
            continue
        results.append(job.execute())
    return results

def exit_code(results: List[RefreshResult]) -> int:
    failed = [r for r in results if not r.ok]
    if any(r.permanent_failure for r in failed):
        return EXIT_PERMANENT_FAILURE
    return EXIT_TRANSIENT_FAILURE if failed else 0

if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Sincroniza a lista de pastas JMAP com o banco local."
    )
    parser.add_argument(
        "--account",
        action="append",
        help="Account id JMAP (pode repetir). Padrão: JMAP_ACCOUNTS ou conta primária."
    )
    parser.add_argument("--log-level", default=LOG_LEVEL)
    args = parser.parse_args()

    configure_logging(args.log_level)

    accounts: List[Optional[str]] = args.account or JMAP_ACCOUNTS or [None]
    results = run_once(accounts)
    for result in results:
        logger.info("refresh.result", **result.to_dict())
    sys.exit(exit_code(results))
