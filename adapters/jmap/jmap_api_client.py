from __future__ import annotations

import structlog
import requests
from requests.adapters import HTTPAdapter, Retry
from typing import Any, Dict, List, Optional

from application.dto.session_dto import JmapSessionDTO
from config.settings import CREDENTIALS, JMAP_HTTP_RETRIES, JMAP_SESSION_URL, Credentials
from domain.model.sync_errors import (
    AuthenticationError,
    PermanentProtocolError,
    TransportError,
)
from ports.jmap_client import JmapClientPort, MethodCall, MethodResponse

logger = structlog.get_logger(__name__)

CORE_CAPABILITY = "urn:ietf:params:jmap:core"
MAIL_CAPABILITY = "urn:ietf:params:jmap:mail"


class JmapApiClient(JmapClientPort):
    """
    Adaptador JMAP sobre HTTP (RFC 8620).
    Todas as requisições passam por sessão com timeout; retries só quando
    configurados explicitamente. Falhas viram exceções do domínio.
    """

    _TIMEOUT = (3.05, 30)  # (connect, read)

    def __init__(
        self,
        session_url: str = JMAP_SESSION_URL,
        credentials: Credentials = CREDENTIALS,
        account_id: Optional[str] = None,
        retries: int = JMAP_HTTP_RETRIES,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.session_url = session_url
        self.credentials = credentials
        self.account_id = account_id
        self.http = http or self._build_session(retries)

    # --------------------------------------------------------------------- #
    #   API pública                                                         #
    # --------------------------------------------------------------------- #
    def fetch_session(self) -> JmapSessionDTO:
        log = logger.bind(url=self.session_url)
        log.info("jmap.session.start")

        data = self._request("GET", self.session_url)
        session = self._session_from_api(data, self.account_id)

        log.info("jmap.session.success", account=session.account_id, api_url=session.api_url)
        return session

    def call(self, session: JmapSessionDTO, method_calls: List[MethodCall]) -> List[MethodResponse]:
        body = {
            "using": [CORE_CAPABILITY, MAIL_CAPABILITY],
            "methodCalls": [list(c) for c in method_calls],
        }
        logger.debug(
            "jmap.call",
            account=session.account_id,
            methods=[c[0] for c in method_calls],
        )
        data = self._request("POST", session.api_url, json=body)

        responses = data.get("methodResponses")
        if not isinstance(responses, list):
            raise PermanentProtocolError("JMAP response without methodResponses")
        return [tuple(r) if isinstance(r, list) else r for r in responses]

    # --------------------------------------------------------------------- #
    #   Helpers privados                                                    #
    # --------------------------------------------------------------------- #
    @staticmethod
    def _build_session(retries: int) -> requests.Session:
        session = requests.Session()
        retry_cfg = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=(429, 502, 503, 504),
            allowed_methods=("GET", "POST"),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_cfg)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", **self.credentials.headers()}

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Request com timeout; traduz falhas HTTP para o domínio."""
        try:
            resp = self.http.request(
                method, url, headers=self._headers(), timeout=self._TIMEOUT, **kwargs
            )
        except requests.RequestException as exc:
            logger.exception("jmap.request.error", url=url)
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        status = resp.status_code
        if status == 401:
            logger.warning("jmap.request.unauthorized", url=url)
            raise AuthenticationError("JMAP server rejected credentials", status_code=status)
        if status == 429 or status >= 500:
            logger.error("jmap.request.server_error", url=url, status=status)
            raise TransportError(f"{method} {url} returned {status}", status_code=status)
        if status >= 400:
            logger.error("jmap.request.client_error", url=url, status=status)
            raise PermanentProtocolError(f"{method} {url} returned {status}", status_code=status)

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("jmap.request.invalid_json", url=url, status=status)
            raise PermanentProtocolError(f"{method} {url} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise PermanentProtocolError(f"{method} {url} returned non-object JSON")
        return data

    # -------- converters -------------------------------------------------- #
    @staticmethod
    def _session_from_api(data: dict, account_id: Optional[str]) -> JmapSessionDTO:
        """
        Converte o recurso de sessão em DTO. Sem `account_id` explícito usa a
        conta primária de e-mail.
        """
        api_url = data.get("apiUrl")
        accounts = data.get("accounts")
        capabilities = data.get("capabilities") or {}
        if not isinstance(api_url, str) or not isinstance(accounts, dict):
            raise PermanentProtocolError("Invalid JMAP session resource")

        if account_id is None:
            account_id = (data.get("primaryAccounts") or {}).get(MAIL_CAPABILITY)
        if not account_id or account_id not in accounts:
            raise PermanentProtocolError(f"Account {account_id!r} not in JMAP session")

        return JmapSessionDTO(
            account_id=account_id,
            api_url=api_url,
            capabilities=capabilities,
            state=data.get("state"),
        )
