"""
Core Database Package.

Provides centralized database management for the vault.
Components should use these helpers instead of creating their own connections.
"""

from engage_core.database.base import Base, TimestampMixin, UUIDPrimaryKey, CreatedAt, UpdatedAt, as_utc, utc_now
from engage_core.database.engine import close_engine, create_engine_for_url, get_engine
from engage_core.database.session import (
    DBSession,
    close_db_connections,
    get_db_session,
    get_session_factory,
    init_database,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKey",
    "CreatedAt",
    "UpdatedAt",
    "as_utc",
    "utc_now",
    # Engine
    "get_engine",
    "create_engine_for_url",
    "close_engine",
    # Session
    "get_session_factory",
    "get_db_session",
    "close_db_connections",
    "init_database",
    "DBSession",
]
