"""
Database Session Management Module.

Provides async session factories for the primary (authoritative) store and
the optional secondary (mirror) store using SQLAlchemy 2.0+ async patterns.
Repositories receive the factories and open one short-lived session per
operation.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.database.base import Base
from core.database.engine import close_engine, get_engine, get_secondary_engine

logger = logging.getLogger(__name__)

_async_session_factory: async_sessionmaker[AsyncSession] | None = None
_secondary_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build a session factory with the framework's session defaults.

    Args:
        engine: Engine the sessions bind to.

    Returns:
        async_sessionmaker[AsyncSession]: Factory for creating database sessions.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the primary store session factory.

    Returns:
        async_sessionmaker[AsyncSession]: Session factory for the authoritative store.
    """
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = create_session_factory(get_engine())

    return _async_session_factory


def get_secondary_session_factory() -> async_sessionmaker[AsyncSession] | None:
    """
    Get or create the mirror store session factory.

    Returns:
        Session factory, or None when no mirror store is configured.
    """
    global _secondary_session_factory

    if _secondary_session_factory is None:
        engine = get_secondary_engine()
        if engine is None:
            return None
        _secondary_session_factory = create_session_factory(engine)

    return _secondary_session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table registered on Base if it doesn't exist."""
    import modules.bpm_forms.models  # noqa: F401 - Import to register models with Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_database() -> None:
    """
    Initialize database schema on both stores.

    The primary store must be reachable; an unreachable mirror only logs a
    warning so the gateway can start without it.
    """
    await create_schema(get_engine())

    secondary = get_secondary_engine()
    if secondary is None:
        logger.info("Secondary store not configured; mirroring disabled")
        return

    try:
        await create_schema(secondary)
    except Exception as e:
        logger.warning(f"Secondary store schema init failed: {e}", exc_info=True)


async def close_db_connections() -> None:
    """
    Close all database connections.

    Should be called during application shutdown.
    """
    global _async_session_factory, _secondary_session_factory

    await close_engine()
    _async_session_factory = None
    _secondary_session_factory = None
