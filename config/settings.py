import base64
import os
from typing import Dict, Optional

# --- Configurações ---
def _split_list(value: str | None) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else []

def _optional_int(value: str | None) -> Optional[int]:
    return int(value) if value and value.strip() else None

JMAP_SESSION_URL = os.getenv("JMAP_SESSION_URL", "http://localhost/.well-known/jmap")
JMAP_USERNAME = os.getenv("JMAP_USERNAME", "")
JMAP_PASSWORD = os.getenv("JMAP_PASSWORD", "")
JMAP_ACCESS_TOKEN = os.getenv("JMAP_ACCESS_TOKEN", "")
JMAP_ACCOUNTS: list[str] = _split_list(os.getenv("JMAP_ACCOUNTS"))
JMAP_MAX_CHANGES = _optional_int(os.getenv("JMAP_MAX_CHANGES"))
JMAP_HTTP_RETRIES = int(os.getenv("JMAP_HTTP_RETRIES", "0"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DB_HOST = os.getenv("POSTGRES_HOST")
DB_PORT = int(os.getenv("POSTGRES_PORT", "5432"))
DB_NAME = os.getenv("POSTGRES_DB")
DB_USER = os.getenv("POSTGRES_USER")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD")
if DB_HOST:
    DB_URL = f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
else:
    DB_URL = os.getenv("FOLDER_SYNC_DB_URL", "sqlite:///folder_sync.db")


class Credentials:
    """
    Monta o header `Authorization` do servidor JMAP.
    Token bearer tem precedência sobre usuário/senha.
    """

    def __init__(
        self,
        username: str = "",
        password: str = "",
        access_token: str = "",
    ) -> None:
        self.username = username
        self.password = password
        self.access_token = access_token

    def headers(self) -> Dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        if self.username:
            raw = f"{self.username}:{self.password}".encode("utf-8")
            return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}
        return {}

CREDENTIALS = Credentials(JMAP_USERNAME, JMAP_PASSWORD, JMAP_ACCESS_TOKEN)
