"""Database access: ORM models, Alembic migrations and the async engine.

The API and the worker each hold one engine. Sessions never commit on
their own; the lifecycle coordinator commits a state change together with
its history row.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from rdam.core.config import DatabaseSettings

_PLAIN_SCHEMES = ("postgresql://", "postgres://")

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def to_async_url(url: str) -> str:
    """Point a plain PostgreSQL URL at the psycopg async driver."""
    for scheme in _PLAIN_SCHEMES:
        if url.startswith(scheme):
            return "postgresql+psycopg://" + url[len(scheme) :]
    return url


def build_engine(database: DatabaseSettings) -> AsyncEngine:
    """Create an engine with the configured pool; no connection is opened yet."""
    return create_async_engine(
        to_async_url(str(database.url)),
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout,
        pool_pre_ping=True,
        echo=database.echo,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory, creating the engine on first use."""
    global _engine, _session_factory

    if _session_factory is None:
        from rdam.core.settings import get_settings

        _engine = build_engine(get_settings().database)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Open a session that is rolled back if the body raises.

    Usage:
        async with get_async_session() as session:
            repo = RequestRepository(session)
            ...
            await repo.commit()
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def close_engine() -> None:
    """Dispose of the engine at shutdown; a later session recreates it."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
