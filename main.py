"""
Engage Vault - Entry Point.

Headless ASGI application for uvicorn execution.

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000 --reload

Or run directly:
    python main.py
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI

from engage_core.database import close_db_connections, init_database
from engage_core.logging_config import setup_logging
from engage_core.providers import get_configuration_provider
from engage_core.security import get_encryption_service
from engage_core.server import create_base_app


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Handles startup and shutdown events.
    """
    logger = logging.getLogger(__name__)

    # Startup
    logger.info("Starting Engage Vault...")

    # Build the key once so a missing production key fails at boot
    encryption = get_encryption_service()
    logger.info(
        f"Encryption service ready ({encryption.previous_key_count} previous key(s) accepted)"
    )

    try:
        await init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down Engage Vault...")
    await close_db_connections()
    logger.info("Cleanup complete")


# -----------------------------------------------------------------------------
# Module-level Application Instance
# -----------------------------------------------------------------------------

_config = get_configuration_provider()

# Setup logging first
setup_logging(_config.get("app.log_level", "INFO"))

_app = create_base_app(_config)
_app.router.lifespan_context = lifespan

# Export for uvicorn
app = _app


# -----------------------------------------------------------------------------
# Direct Execution
# -----------------------------------------------------------------------------


def main() -> None:
    """Run the application directly with uvicorn."""
    host = _config.get("server.host", "127.0.0.1")
    port = _config.get("server.port", 8000)
    debug = _config.get("app.debug", False)

    uvicorn_config = {
        "host": host,
        "port": port,
        "reload": debug,
        "log_level": "warning",  # Suppress uvicorn info logs
        "access_log": False,     # Disable uvicorn access logs
    }

    # If reload is enabled, exclude logs and cache directories
    if debug:
        uvicorn_config["reload_excludes"] = [
            "logs/*",
            "**/__pycache__/*",
            "**/*.pyc",
            ".venv/*",
            "*.log",
        ]

    uvicorn.run("main:app", **uvicorn_config)


if __name__ == "__main__":
    main()
