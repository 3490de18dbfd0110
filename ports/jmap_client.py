from typing import Any, Dict, List, Tuple

from application.dto.session_dto import JmapSessionDTO

# [nome, argumentos, id da chamada] como no RFC 8620
MethodCall = Tuple[str, Dict[str, Any], str]
MethodResponse = Tuple[str, Dict[str, Any], str]


class JmapClientPort:
    def fetch_session(self) -> JmapSessionDTO:
        """Descobre a sessão JMAP (accountId, apiUrl, capabilities)."""
        raise NotImplementedError

    def call(self, session: JmapSessionDTO, method_calls: List[MethodCall]) -> List[MethodResponse]:
        """Envia um request JMAP e devolve `methodResponses` na ordem recebida."""
        raise NotImplementedError
