"""
Embedded database access shared by the stores.

Every operation opens its own short-lived connection (NullPool); nothing is
cached in memory between calls. Each store creates its own tables lazily
behind an asyncio.Lock with a double-checked flag, so concurrent first callers
create the schema exactly once.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, ClassVar

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from .records import Base

log = structlog.get_logger()


class StorageError(Exception):
    """Raised when the embedded store cannot be initialized or accessed"""
    pass


class Database:
    """Engine and session factory for the embedded store."""

    def __init__(self, url: str):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, poolclass=NullPool)
        self._sessions = async_sessionmaker(
            bind=self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on error."""
        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        """Check the store is reachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            log.warning("database.ping_failed", error=str(e))
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


class SqlStore:
    """Base class giving a store its own lazy schema gate."""

    tables: ClassVar[tuple] = ()

    def __init__(self, database: Database):
        self._db = database
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            store = type(self).__name__
            try:
                async with self._db.engine.begin() as conn:
                    await conn.run_sync(
                        Base.metadata.create_all,
                        tables=[model.__table__ for model in self.tables],
                    )
            except SQLAlchemyError as e:
                log.error("store.init_failed", store=store, error=str(e))
                raise StorageError(f"Failed to initialize {store} schema: {e}") from e

            self._initialized = True
            log.info("store.initialized", store=store)

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Initialized session; SQLAlchemy errors are logged and raised as StorageError."""
        await self._ensure_initialized()
        try:
            async with self._db.session() as session:
                yield session
        except SQLAlchemyError as e:
            log.error("store.operation_failed", store=type(self).__name__, operation=operation, error=str(e))
            raise StorageError(f"{operation} failed: {e}") from e
