"""
Fixtures compartilhadas: storage em memória, cliente JMAP roteirizado e
respostas JMAP gravadas em `tests/resources`.
"""
import copy
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Set
from unittest.mock import MagicMock

import pytest

from application.dto.session_dto import JmapSessionDTO
from domain.model.folder import Folder, FolderType
from ports.jmap_client import JmapClientPort
from ports.persistence import SYNC_STATE_KEY, FolderStoragePort

RESOURCES = Path(__file__).parent / "resources"
ACCOUNT_ID = "test@example.com"

INITIAL_FOLDERS = [
    Folder("id_inbox", "Inbox", FolderType.INBOX),
    Folder("id_archive", "Archive", FolderType.ARCHIVE),
    Folder("id_drafts", "Drafts", FolderType.DRAFTS),
    Folder("id_sent", "Sent", FolderType.SENT),
    Folder("id_trash", "Trash", FolderType.TRASH),
    Folder("id_folder1", "folder1", FolderType.REGULAR),
]


def load_resource(name: str) -> dict:
    return json.loads((RESOURCES / name).read_text(encoding="utf-8"))


class InMemoryFolderStorage(FolderStoragePort):
    def __init__(self) -> None:
        self.folders: Dict[str, Folder] = {}
        self.extra: Dict[str, str] = {}
        self.writes: List[str] = []

    def create_folders(self, folders):
        for folder in folders:
            self.writes.append(f"create:{folder.server_id}")
            self.folders[folder.server_id] = folder

    def update_folders(self, folders):
        for folder in folders:
            self.writes.append(f"update:{folder.server_id}")
            self.folders[folder.server_id] = folder

    def delete_folders(self, server_ids):
        for server_id in server_ids:
            self.writes.append(f"delete:{server_id}")
            self.folders.pop(server_id, None)

    def get_folder_server_ids(self) -> Set[str]:
        return set(self.folders)

    def get_folder(self, server_id: str) -> Optional[Folder]:
        return self.folders.get(server_id)

    def get_extra_string(self, key: str) -> Optional[str]:
        return self.extra.get(key)

    def set_extra_string(self, key: str, value: str) -> None:
        self.writes.append(f"extra:{key}")
        self.extra[key] = value

    @contextmanager
    def transaction(self):
        folders, extra = dict(self.folders), dict(self.extra)
        try:
            yield
        except Exception:
            self.folders, self.extra = folders, extra
            raise


class ScriptedJmapClient(JmapClientPort):
    """Devolve respostas JMAP pré-gravadas, na ordem, e registra as chamadas."""

    def __init__(self, *responses, session_error: Optional[Exception] = None) -> None:
        self.responses = list(responses)
        self.session_error = session_error
        self.calls: List[list] = []
        self.session_fetches = 0

    def fetch_session(self) -> JmapSessionDTO:
        self.session_fetches += 1
        if self.session_error is not None:
            raise self.session_error
        return JmapSessionDTO(account_id=ACCOUNT_ID, api_url="https://jmap.example.com/jmap/")

    def call(self, session, method_calls):
        self.calls.append(copy.deepcopy(method_calls))
        if not self.responses:
            raise AssertionError(f"Unexpected JMAP call: {method_calls!r}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return [tuple(r) for r in response["methodResponses"]]

    def method_names(self) -> List[List[str]]:
        return [[c[0] for c in call] for call in self.calls]


@pytest.fixture
def storage() -> InMemoryFolderStorage:
    return InMemoryFolderStorage()


@pytest.fixture
def populated_storage(storage) -> InMemoryFolderStorage:
    """Estado local do cenário de delta: 6 pastas e estado "23"."""
    storage.create_folders(INITIAL_FOLDERS)
    storage.set_extra_string(SYNC_STATE_KEY, "23")
    storage.writes.clear()
    return storage


@pytest.fixture
def session() -> JmapSessionDTO:
    return JmapSessionDTO(account_id=ACCOUNT_ID, api_url="https://jmap.example.com/jmap/")


def http_response(status_code: int = 200, body=None, text: Optional[str] = None) -> MagicMock:
    """Resposta `requests` falsa; `text` sem JSON válido simula corpo inválido."""
    resp = MagicMock()
    resp.status_code = status_code
    if text is not None:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = body
    return resp
