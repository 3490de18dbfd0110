from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Iterable, Optional, Set

from domain.model.folder import Folder

SYNC_STATE_KEY = "jmapState"


class FolderStoragePort(ABC):
    """
    Espelho local das pastas de UMA conta. O motor de reconciliação é o
    único escritor.
    """

    @abstractmethod
    def create_folders(self, folders: Iterable[Folder]) -> None: ...

    @abstractmethod
    def update_folders(self, folders: Iterable[Folder]) -> None: ...

    @abstractmethod
    def delete_folders(self, server_ids: Iterable[str]) -> None: ...

    @abstractmethod
    def get_folder_server_ids(self) -> Set[str]: ...

    @abstractmethod
    def get_folder(self, server_id: str) -> Optional[Folder]: ...

    @abstractmethod
    def get_extra_string(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def set_extra_string(self, key: str, value: str) -> None: ...

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Agrupa as operações seguintes numa unidade atômica: ou tudo é
        persistido ao sair do bloco, ou nada.
        """
