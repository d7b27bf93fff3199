"""
Credential Stores

Durable per-namespace persistence for credentials.

Every store guarantees that an upsert of an active credential clears the
active flag on all other records of the namespace in the same atomic step,
so at most one credential per namespace is ever active.

Implementations:
- SqlOfflineCredentialStore / SqlRemoteCredentialStore: SQLAlchemy tables
- InMemoryCredentialStore: process-local, for tests and ephemeral sessions
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Generic, Optional, TypeVar
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from launcher.core.accounts.models import (
    Credentials,
    OfflineCredentials,
    OfflineProfile,
    RemoteCredentials,
    from_timestamp,
    to_timestamp,
)
from launcher.core.database.connection import Database
from launcher.core.database.encryption import TokenCipher
from launcher.core.database.models import OfflineUser, RemoteUser
from launcher.core.errors import StorageError

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=Credentials)


class CredentialStore(ABC, Generic[C]):
    """Storage capability for one credential namespace."""

    @abstractmethod
    async def get_active(self) -> Optional[C]:
        """The single active credential, or None."""

    @abstractmethod
    async def get_all(self) -> Dict[str, C]:
        """Snapshot of every stored credential keyed by id. Order is not meaningful."""

    @abstractmethod
    async def upsert(self, credentials: C) -> None:
        """Insert or replace by id; an active credential deactivates all others atomically."""

    @abstractmethod
    async def activate(self, account_id: str) -> bool:
        """
        Make one stored account the active one, touching only active flags.

        Returns:
            False, with nothing changed, if the account is not stored
        """

    @abstractmethod
    async def update_token(self, account_id: str, token: str, expires: datetime) -> bool:
        """
        Replace only the token and expiry of a stored account.

        Returns:
            False, with nothing written, if the account is no longer stored
        """

    @abstractmethod
    async def remove(self, account_id: str) -> None:
        """Delete unconditionally. Does not promote another account."""


class InMemoryCredentialStore(CredentialStore[C]):
    """
    Dict-backed store.

    A single lock serializes all access, which stands in for the database
    transaction of the SQL stores.
    """

    def __init__(self):
        self._records: Dict[str, C] = {}
        self._lock = asyncio.Lock()

    async def get_active(self) -> Optional[C]:
        async with self._lock:
            for record in self._records.values():
                if record.active:
                    return record.model_copy(deep=True)
        return None

    async def get_all(self) -> Dict[str, C]:
        async with self._lock:
            return {k: v.model_copy(deep=True) for k, v in self._records.items()}

    async def upsert(self, credentials: C) -> None:
        async with self._lock:
            if credentials.active:
                for account_id, record in self._records.items():
                    if record.active:
                        self._records[account_id] = record.model_copy(update={'active': False})
            self._records[credentials.id] = credentials.model_copy(deep=True)

    async def activate(self, account_id: str) -> bool:
        async with self._lock:
            if account_id not in self._records:
                return False
            for key, record in list(self._records.items()):
                if record.active != (key == account_id):
                    self._records[key] = record.model_copy(update={'active': key == account_id})
            return True

    async def update_token(self, account_id: str, token: str, expires: datetime) -> bool:
        async with self._lock:
            record = self._records.get(account_id)
            if record is None:
                return False
            self._records[account_id] = record.with_token(token, expires)
            return True

    async def remove(self, account_id: str) -> None:
        async with self._lock:
            self._records.pop(account_id, None)


class SqlCredentialStore(CredentialStore[C]):
    """
    SQLAlchemy-backed store. Subclasses map one ORM table to one credential type.

    Token columns are encrypted when a TokenCipher is given.
    """

    model = None
    token_column = None

    def __init__(self, db: Database, cipher: Optional[TokenCipher] = None):
        self.db = db
        self.cipher = cipher

    # =========================================================================
    # Row mapping
    # =========================================================================

    @abstractmethod
    def _to_row(self, credentials: C) -> dict:
        ...

    @abstractmethod
    def _from_row(self, row) -> C:
        ...

    def _seal(self, token: str) -> str:
        return self.cipher.encrypt(token) if self.cipher else token

    def _open(self, token: str) -> str:
        return self.cipher.decrypt(token) if self.cipher else token

    def _insert(self, dialect_name: str):
        if dialect_name == "postgresql":
            return pg_insert(self.model)
        return sqlite_insert(self.model)

    # =========================================================================
    # Operations
    # =========================================================================

    async def get_active(self) -> Optional[C]:
        try:
            async with self.db.transaction() as session:
                result = await session.execute(
                    select(self.model).where(self.model.active.is_(True))
                )
                rows = result.scalars().all()
                if len(rows) > 1:
                    logger.error(
                        f"{len(rows)} active rows in {self.model.__tablename__}, using {rows[0].id}"
                    )
                return self._from_row(rows[0]) if rows else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load active account from {self.model.__tablename__}: {e}")
            raise StorageError(f"Failed to load active account: {e}") from e
        except ValueError as e:
            raise StorageError(f"Corrupted row in {self.model.__tablename__}: {e}") from e

    async def get_all(self) -> Dict[str, C]:
        try:
            async with self.db.transaction() as session:
                result = await session.execute(select(self.model))
                return {row.id: self._from_row(row) for row in result.scalars().all()}
        except SQLAlchemyError as e:
            logger.error(f"Failed to load accounts from {self.model.__tablename__}: {e}")
            raise StorageError(f"Failed to load accounts: {e}") from e
        except ValueError as e:
            raise StorageError(f"Corrupted row in {self.model.__tablename__}: {e}") from e

    async def upsert(self, credentials: C) -> None:
        values = self._to_row(credentials)
        try:
            async with self.db.transaction() as session:
                if credentials.active:
                    await session.execute(
                        update(self.model)
                        .where(self.model.active.is_(True))
                        .values(active=False)
                    )

                stmt = self._insert(self.db.engine.dialect.name).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[self.model.id],
                    set_={key: stmt.excluded[key] for key in values if key != 'id'},
                )
                await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save account {credentials.id}: {e}")
            raise StorageError(f"Failed to save account {credentials.id}: {e}") from e

    async def activate(self, account_id: str) -> bool:
        try:
            async with self.db.transaction() as session:
                found = await session.scalar(
                    select(self.model.id).where(self.model.id == account_id)
                )
                if found is None:
                    return False
                await session.execute(
                    update(self.model)
                    .where(self.model.active.is_(True), self.model.id != account_id)
                    .values(active=False)
                )
                await session.execute(
                    update(self.model).where(self.model.id == account_id).values(active=True)
                )
                return True
        except SQLAlchemyError as e:
            logger.error(f"Failed to activate account {account_id}: {e}")
            raise StorageError(f"Failed to activate account {account_id}: {e}") from e

    async def update_token(self, account_id: str, token: str, expires: datetime) -> bool:
        values = {self.token_column: self._seal(token), 'expires': to_timestamp(expires)}
        try:
            async with self.db.transaction() as session:
                result = await session.execute(
                    update(self.model).where(self.model.id == account_id).values(**values)
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to update token for account {account_id}: {e}")
            raise StorageError(f"Failed to update token for account {account_id}: {e}") from e

    async def remove(self, account_id: str) -> None:
        try:
            async with self.db.transaction() as session:
                await session.execute(delete(self.model).where(self.model.id == account_id))
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete account {account_id}: {e}")
            raise StorageError(f"Failed to delete account {account_id}: {e}") from e


class SqlOfflineCredentialStore(SqlCredentialStore[OfflineCredentials]):
    model = OfflineUser
    token_column = 'access_token'

    def _to_row(self, credentials: OfflineCredentials) -> dict:
        return {
            'id': credentials.id,
            'active': credentials.active,
            'name': credentials.profile.name,
            'access_token': self._seal(credentials.access_token),
            'refresh_token': self._seal(credentials.refresh_token),
            'expires': to_timestamp(credentials.expires),
        }

    def _from_row(self, row: OfflineUser) -> OfflineCredentials:
        return OfflineCredentials(
            profile=OfflineProfile(id=UUID(row.id), name=row.name),
            access_token=self._open(row.access_token),
            refresh_token=self._open(row.refresh_token),
            expires=from_timestamp(row.expires),
            active=bool(row.active),
        )


class SqlRemoteCredentialStore(SqlCredentialStore[RemoteCredentials]):
    model = RemoteUser
    token_column = 'session_id'

    def _to_row(self, credentials: RemoteCredentials) -> dict:
        return {
            'id': credentials.user_id,
            'active': credentials.active,
            'session_id': self._seal(credentials.session),
            'expires': to_timestamp(credentials.expires),
        }

    def _from_row(self, row: RemoteUser) -> RemoteCredentials:
        return RemoteCredentials(
            session=self._open(row.session_id),
            user_id=row.id,
            expires=from_timestamp(row.expires),
            active=bool(row.active),
        )
