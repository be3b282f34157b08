"""
Async SQLAlchemy engine and session handling.

Production runs on PostgreSQL through asyncpg; local runs may point
``DATABASE_URL`` at ``sqlite+aiosqlite://``. Advisory locks (leader election
for the auto-schedule loop) exist only on PostgreSQL.
"""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from governor.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for the governor tables and the collaborator tables it reads."""


class DatabaseManager:
    """Owns the engine and hands out one session per unit of work."""

    def __init__(self, database_url: str | None = None) -> None:
        self._database_url = database_url or get_settings().database_url
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def dialect_name(self) -> str:
        return make_url(self._database_url).get_backend_name()

    @property
    def supports_advisory_locks(self) -> bool:
        return self.dialect_name == "postgresql"

    def _engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"echo": get_settings().debug}
        if self.dialect_name == "sqlite":
            options["connect_args"] = {"check_same_thread": False}
        else:
            options["pool_pre_ping"] = True
        return options

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(self._database_url, **self._engine_options())
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed on success and rolled back on any error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_database_manager() -> DatabaseManager:
    """Process-wide database manager."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one transaction per request."""
    async with get_database_manager().session() as session:
        yield session
