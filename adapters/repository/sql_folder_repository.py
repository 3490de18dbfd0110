import os
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Set, Union

import structlog
from sqlalchemy import (
    Column, Integer, String, ForeignKey, UniqueConstraint,
    create_engine, delete, select,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from domain.model.folder import Folder, FolderType
from ports.persistence import FolderStoragePort

logger = structlog.get_logger(__name__)
Base = declarative_base()
CHUNK_SIZE = int(os.getenv("BULK_CHUNK_SIZE", 300))

class AccountORM(Base):
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String, unique=True, nullable=False)

class FolderORM(Base):
    __tablename__ = "folders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    server_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default=FolderType.REGULAR.value)

    __table_args__ = (
        UniqueConstraint("account_id", "server_id", name="uix_account_folder"),
    )

class ExtraStringORM(Base):
    __tablename__ = "extra_strings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    key = Column(String, nullable=False)
    value = Column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "key", name="uix_account_key"),
    )

class SqlFolderRepository(FolderStoragePort):
    """
    Espelho das pastas de uma conta em banco relacional (PostgreSQL ou
    SQLite). Fora de `transaction()` cada operação faz o próprio commit.
    """

    def __init__(self, db: Union[str, Engine], account: str):
        self.engine = create_engine(db) if isinstance(db, str) else db
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)
        self.account = account
        self._active: Optional[Session] = None
        self._account_pk: Optional[int] = None

    # ------------------------------------------------------------------ #
    #  Transações                                                        #
    # ------------------------------------------------------------------ #
    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._active is not None:
            yield
            return
        log = logger.bind(account=self.account)
        session = self.Session()
        self._active = session
        try:
            yield
            session.commit()
            log.debug("folder_repo.transaction.commit")
        except Exception:
            session.rollback()
            self._account_pk = None
            log.exception("folder_repo.transaction.rollback")
            raise
        finally:
            self._active = None
            session.close()

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        if self._active is not None:
            yield self._active
            return
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            self._account_pk = None
            logger.exception("folder_repo.session.error", account=self.account)
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------ #
    #  Pastas                                                            #
    # ------------------------------------------------------------------ #
    def create_folders(self, folders: Iterable[Folder]) -> None:
        self._upsert_folders(list(folders), "create")

    def update_folders(self, folders: Iterable[Folder]) -> None:
        self._upsert_folders(list(folders), "update")

    def delete_folders(self, server_ids: Iterable[str]) -> None:
        ids = list(server_ids)
        if not ids:
            return
        with self._session_scope() as session:
            acc_pk = self._ensure_account(session)
            for i in range(0, len(ids), CHUNK_SIZE):
                session.execute(
                    delete(FolderORM).where(
                        FolderORM.account_id == acc_pk,
                        FolderORM.server_id.in_(ids[i : i + CHUNK_SIZE]),
                    )
                )
        logger.info("folder_repo.delete.success", account=self.account, total=len(ids))

    def get_folder_server_ids(self) -> Set[str]:
        with self._session_scope() as session:
            acc_pk = self._ensure_account(session)
            rows = session.execute(
                select(FolderORM.server_id).where(FolderORM.account_id == acc_pk)
            ).scalars()
            return set(rows)

    def get_folder(self, server_id: str) -> Optional[Folder]:
        with self._session_scope() as session:
            acc_pk = self._ensure_account(session)
            row = session.execute(
                select(FolderORM).where(
                    FolderORM.account_id == acc_pk, FolderORM.server_id == server_id
                )
            ).scalar_one_or_none()
            if row is None:
                return None
            return Folder(server_id=row.server_id, name=row.name, type=FolderType(row.type))

    # ------------------------------------------------------------------ #
    #  Strings extras (estado de sync)                                   #
    # ------------------------------------------------------------------ #
    def get_extra_string(self, key: str) -> Optional[str]:
        with self._session_scope() as session:
            acc_pk = self._ensure_account(session)
            return session.execute(
                select(ExtraStringORM.value).where(
                    ExtraStringORM.account_id == acc_pk, ExtraStringORM.key == key
                )
            ).scalar_one_or_none()

    def set_extra_string(self, key: str, value: str) -> None:
        with self._session_scope() as session:
            acc_pk = self._ensure_account(session)
            insert_stmt = self._insert(session, ExtraStringORM).values(
                account_id=acc_pk, key=key, value=value
            )
            session.execute(
                insert_stmt.on_conflict_do_update(
                    index_elements=["account_id", "key"],
                    set_={"value": insert_stmt.excluded.value},
                )
            )
        logger.debug("folder_repo.extra_string.set", account=self.account, key=key)

    # ------------------------------------------------------------------ #
    #  Helpers                                                           #
    # ------------------------------------------------------------------ #
    @staticmethod
    def _insert(session: Session, model):
        if session.get_bind().dialect.name == "postgresql":
            return pg_insert(model)
        return sqlite_insert(model)

    def _ensure_account(self, session: Session) -> int:
        if self._account_pk is not None:
            return self._account_pk
        session.execute(
            self._insert(session, AccountORM)
            .values(account_id=self.account)
            .on_conflict_do_nothing()
        )
        self._account_pk = session.execute(
            select(AccountORM.id).where(AccountORM.account_id == self.account)
        ).scalar_one()
        return self._account_pk

    @staticmethod
    def _build_folder_dict(acc_pk: int, f: Folder) -> Dict:
        return {
            "account_id": acc_pk,
            "server_id": f.server_id,
            "name": f.name,
            "type": f.type.value,
        }

    def _upsert_folders(self, folders: List[Folder], op: str) -> None:
        if not folders:
            logger.info(f"folder_repo.{op}.skip", reason="empty_batch")
            return
        with self._session_scope() as session:
            acc_pk = self._ensure_account(session)
            for i in range(0, len(folders), CHUNK_SIZE):
                batch = folders[i : i + CHUNK_SIZE]
                insert_stmt = self._insert(session, FolderORM).values(
                    [self._build_folder_dict(acc_pk, f) for f in batch]
                )
                session.execute(
                    insert_stmt.on_conflict_do_update(
                        index_elements=["account_id", "server_id"],
                        set_={
                            "name": insert_stmt.excluded.name,
                            "type": insert_stmt.excluded.type,
                        },
                    )
                )
        logger.info(f"folder_repo.{op}.success", account=self.account, total=len(folders))
