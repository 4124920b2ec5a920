"""
Database Session Management Module.

Provides the async session factory, the request-scoped FastAPI session
dependency, and startup/shutdown helpers.
"""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engage_core.database.base import Base
from engage_core.database.engine import close_engine, get_engine

_logger = logging.getLogger(__name__)

_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async session factory (singleton).

    Sessions keep attribute state after commit so services can return
    persisted rows without a lazy reload.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Rolls back on error; services commit their own units of work.
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


DBSession = Annotated[AsyncSession, Depends(get_db_session)]


async def init_database() -> None:
    """Create all tables registered on Base.metadata."""
    # Import models so their tables are registered before create_all
    import engage_core.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    _logger.info("Database tables initialized")


async def close_db_connections() -> None:
    """Dispose the engine and drop the cached session factory."""
    global _session_factory
    _session_factory = None
    await close_engine()
    _logger.info("Database connections closed")
