"""
Database connection and session management.

A Database handle is created once at startup and passed to every component
that needs storage. SQLite write transactions start with BEGIN IMMEDIATE so
concurrent writers are serialized by the database itself.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging

from sqlalchemy import event
from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from launcher.core.errors import StorageError
from launcher.core.paths import get_database_path

logger = logging.getLogger(__name__)


def default_database_url(settings_dir: Optional[str] = None) -> str:
    """SQLite database inside the launcher settings directory."""
    return f"sqlite+aiosqlite:///{get_database_path(settings_dir)}"


class Database:
    """
    Owns the async engine and session factory.

    Usage:
        db = await Database.connect(settings)
        async with db.transaction() as session:
            ...
        await db.dispose()
    """

    def __init__(self, url: str, busy_timeout: float = 30.0, echo: bool = False):
        self.url = url
        self.is_sqlite = url.startswith("sqlite")

        connect_args = {}
        if self.is_sqlite:
            connect_args['timeout'] = busy_timeout

        self.engine = create_async_engine(url, echo=echo, connect_args=connect_args)
        if self.is_sqlite:
            self._configure_sqlite(busy_timeout, in_memory=":memory:" in url)

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    def _configure_sqlite(self, busy_timeout: float, in_memory: bool):
        """Take over transaction control from the driver and tune the connection."""

        @event.listens_for(self.engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # Stop the driver from emitting its own deferred BEGIN
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout * 1000)}")
            if not in_memory:
                cursor.execute("PRAGMA journal_mode = WAL")
            cursor.close()

        @event.listens_for(self.engine.sync_engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @classmethod
    async def connect(cls, settings) -> "Database":
        """
        Open the configured database and create missing tables.

        Raises:
            StorageError: If the settings dir or database cannot be opened
        """
        try:
            url = settings.database_url or default_database_url(settings.launcher_settings_dir)
        except OSError as e:
            raise StorageError(f"Could not find valid config dir: {e}") from e

        db = cls(url, busy_timeout=settings.database_busy_timeout)
        try:
            await db.create_tables()
        except (OperationalError, DBAPIError) as e:
            await db.dispose()
            logger.error(f"Database initialization failed: {e}")
            raise StorageError(f"Failed to open database: {e}") from e

        logger.info(f"Database initialized: {url.split('///')[-1]}")
        return db

    async def create_tables(self):
        """
        Create all tables in the database.
        Schema migrations are handled outside this package.
        """
        from .models import Base
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session wrapped in a single transaction, committed on success."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def dispose(self):
        await self.engine.dispose()
