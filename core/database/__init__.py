"""
Core Database Package.

Provides centralized database management for the framework.
Modules should use these components instead of creating their own connections.
"""

from core.database.base import Base, TimestampMixin, IntPrimaryKey, CreatedAt, UpdatedAt, utc_now
from core.database.engine import get_engine, get_secondary_engine, close_engine
from core.database.session import (
    create_session_factory,
    create_schema,
    get_session_factory,
    get_secondary_session_factory,
    close_db_connections,
    init_database,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "IntPrimaryKey",
    "CreatedAt",
    "UpdatedAt",
    "utc_now",
    # Engine
    "get_engine",
    "get_secondary_engine",
    "close_engine",
    # Session
    "create_session_factory",
    "create_schema",
    "get_session_factory",
    "get_secondary_session_factory",
    "close_db_connections",
    "init_database",
]
