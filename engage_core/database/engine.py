"""
Database Engine Management Module.

Provides a singleton AsyncEngine for the entire application.
Uses configuration from engage_core.providers.ConfigurationProvider.

SSL Configuration (PostgreSQL only):
    DATABASE_SSL_MODE controls SSL behavior:
    - "verify-full": Full SSL verification with certificate check (RECOMMENDED for production)
    - "require": Require SSL but don't verify certificate (default)
    - "disable": No SSL (only for local development)

    DATABASE_SSL_CERT_PATH: Path to CA certificate file (required for verify-full mode)
"""

import logging
import os
import ssl

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from engage_core.providers import get_configuration_provider

_logger = logging.getLogger(__name__)

# Global engine instance (singleton)
_engine: AsyncEngine | None = None


def _get_ssl_context() -> ssl.SSLContext | None:
    """
    Create SSL context based on DATABASE_SSL_MODE environment variable.

    Returns:
        ssl.SSLContext for verify-full / require modes, None for disable.
    """
    ssl_mode = os.getenv("DATABASE_SSL_MODE", "require").lower()

    if ssl_mode == "disable":
        _logger.warning(
            "DATABASE_SSL_MODE=disable: SSL is disabled. "
            "This is insecure and should only be used for local development."
        )
        return None

    if ssl_mode == "verify-full":
        cert_path = os.getenv("DATABASE_SSL_CERT_PATH", "")
        if cert_path:
            ctx = ssl.create_default_context(cafile=cert_path)
            ctx.check_hostname = True
            ctx.verify_mode = ssl.CERT_REQUIRED
            _logger.info(f"SSL mode: verify-full with cert: {cert_path}")
            return ctx
        _logger.error(
            "DATABASE_SSL_MODE=verify-full requires DATABASE_SSL_CERT_PATH. "
            "Falling back to 'require' mode."
        )

    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """
    Build an AsyncEngine with backend-appropriate options.

    PostgreSQL (asyncpg) gets a sized pool and an SSL context; SQLite
    (aiosqlite) is created with default pooling.
    """
    if not database_url:
        raise RuntimeError("DATABASE_URL is not configured")

    if database_url.startswith("postgresql"):
        return create_async_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            pool_size=20,
            max_overflow=40,
            connect_args={"ssl": _get_ssl_context()},
        )

    return create_async_engine(database_url, echo=False)


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine (singleton).

    Returns:
        AsyncEngine: SQLAlchemy async engine instance.
    """
    global _engine

    if _engine is None:
        config = get_configuration_provider()
        _engine = create_engine_for_url(str(config.get("database.url", "")))

    return _engine


async def close_engine() -> None:
    """
    Close the database engine and release all connections.

    Should be called during application shutdown.
    """
    global _engine

    if _engine is not None:
        await _engine.dispose()
        _engine = None
