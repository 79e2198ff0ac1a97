"""Database session management via DatabaseManager class."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice.db.base import Base


def _is_memory_url(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url)


def _enable_sqlite_foreign_keys(dbapi_conn: Any, connection_record: Any) -> None:
    """Turn on ON DELETE CASCADE enforcement.

    SQLite ships with foreign keys disabled and the PRAGMA is per-connection,
    so it is applied on every new connection from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """Manages async database engine and session lifecycle.

    Usage:
        db = DatabaseManager("sqlite+aiosqlite://")
        await db.create_schema()

        async with db.session() as session:
            result = await session.execute(query)

        await db.dispose()

    An in-memory SQLite URL is pinned to a single shared connection so every
    session sees the same tables. Sessions on that connection share one
    transaction, so they are serialized: a task holds the connection from
    the start of its outermost session until that session ends. Sessions
    opened inside it by the same task join the held connection.
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        engine_kwargs: dict[str, Any] = {"echo": echo}
        self._serial: asyncio.Lock | None = None
        self._holder: asyncio.Task | None = None  # type: ignore[type-arg]
        if _is_memory_url(database_url):
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            self._serial = asyncio.Lock()
        self._engine = create_async_engine(database_url, **engine_kwargs)
        if database_url.startswith("sqlite"):
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_schema(self) -> None:
        """Create all tables registered on ``Base.metadata`` (idempotent)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Get a database session with automatic commit/rollback.

        Commits on success, rolls back on exception.
        """
        if self._serial is None or self._holder is asyncio.current_task():
            async with self._transaction() as session:
                yield session
            return

        async with self._serial:
            self._holder = asyncio.current_task()
            try:
                async with self._transaction() as session:
                    yield session
            finally:
                self._holder = None

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def dispose(self) -> None:
        """Dispose of the engine and release all connections."""
        await self._engine.dispose()
