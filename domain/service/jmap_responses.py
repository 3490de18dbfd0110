"""
Leitura dos `methodResponses` JMAP (RFC 8620 §3.4 e §3.6.2).

Erros de método viram exceções do domínio; `cannotCalculateChanges` é
tratado pelo chamador antes de chegar aqui.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from application.dto.mailbox_dto import MailboxDTO
from domain.model.sync_errors import PermanentProtocolError, TransportError
from ports.jmap_client import MethodResponse

CANNOT_CALCULATE_CHANGES = "cannotCalculateChanges"
_TRANSIENT_METHOD_ERRORS = frozenset({"serverUnavailable", "serverFail"})


class JmapMethodError(PermanentProtocolError):
    def __init__(self, method: str, error_type: str, description: Optional[str] = None) -> None:
        super().__init__(f"{method} failed with {error_type}: {description or '-'}")
        self.method = method
        self.error_type = error_type


def find_response(responses: List[MethodResponse], call_id: str) -> Tuple[str, Dict[str, Any]]:
    for item in responses or []:
        if not isinstance(item, (list, tuple)) or len(item) != 3:
            raise PermanentProtocolError(f"Malformed method response: {item!r}")
        name, args, response_id = item
        if response_id == call_id:
            if not isinstance(args, dict):
                raise PermanentProtocolError(f"Malformed arguments for {name}")
            return name, args
    raise PermanentProtocolError(f"No method response for call id {call_id}")


def method_error_type(name: str, args: Dict[str, Any]) -> Optional[str]:
    if name != "error":
        return None
    return str(args.get("type", "unknown"))


def unwrap_response(responses: List[MethodResponse], expected: str, call_id: str) -> Dict[str, Any]:
    """Devolve os argumentos da resposta `call_id`, levantando em caso de erro."""
    name, args = find_response(responses, call_id)
    error_type = method_error_type(name, args)
    if error_type in _TRANSIENT_METHOD_ERRORS:
        raise TransportError(f"{expected} failed with {error_type}")
    if error_type is not None:
        raise JmapMethodError(expected, error_type, args.get("description"))
    if name != expected:
        raise PermanentProtocolError(f"Expected {expected} response, got {name}")
    return args


def as_list(args: Dict[str, Any], key: str) -> List[Any]:
    """`args[key]` como lista; ausente vira lista vazia, outro tipo é erro."""
    value = args.get(key)
    if value is None and key not in args:
        return []
    if not isinstance(value, list):
        raise PermanentProtocolError(f"Expected a list in {key!r}, got {type(value).__name__}")
    return value


def as_id_list(args: Dict[str, Any], key: str) -> List[str]:
    ids = as_list(args, key)
    if not all(isinstance(i, str) for i in ids):
        raise PermanentProtocolError(f"Non-string id in {key!r}")
    return ids


def mailbox_from_api(item: Dict[str, Any]) -> MailboxDTO:
    if not isinstance(item, dict):
        raise PermanentProtocolError(f"Malformed mailbox object: {item!r}")
    server_id, name, role = item.get("id"), item.get("name"), item.get("role")
    if not isinstance(server_id, str) or not isinstance(name, str):
        raise PermanentProtocolError(f"Malformed mailbox object: {item!r}")
    if role is not None and not isinstance(role, str):
        raise PermanentProtocolError(f"Malformed mailbox role: {role!r}")
    return MailboxDTO(id=server_id, name=name, role=role)
