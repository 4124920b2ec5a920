"""
Pytest Configuration and Shared Fixtures.

Provides common test fixtures for the vault and webhook tests.
"""

from unittest.mock import AsyncMock, MagicMock
from typing import Any, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import engage_core.models  # noqa: F401  (registers tables on Base.metadata)
from engage_core.database.base import Base
from engage_core.providers import reset_configuration_provider
from engage_core.security.encryption import (
    EncryptionService,
    derive_key,
    reset_encryption_service,
)
from engage_core.security.webhook import reset_webhook_security


TEST_ENCRYPTION_KEY = "test-encryption-key-0123456789abcdef"

WEBHOOK_SECRETS = {
    "meta": "s3cr3t",
    "shopify": "shopify-test-secret",
    "stripe": "whsec_test_secret",
    "woocommerce": "woocommerce-test-secret",
}


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached config, key material and verifiers around every test."""
    reset_configuration_provider()
    reset_encryption_service()
    reset_webhook_security()
    yield
    reset_configuration_provider()
    reset_encryption_service()
    reset_webhook_security()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up mock environment variables for testing."""
    env_vars = {
        "SERVER_HOST": "127.0.0.1",
        "SERVER_PORT": "8000",
        "BASE_URL": "https://test.example.com",
        "APP_ENV": "development",
        "APP_DEBUG": "true",
        "APP_LOG_LEVEL": "DEBUG",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "ENCRYPTION_KEY": TEST_ENCRYPTION_KEY,
        "META_APP_SECRET": WEBHOOK_SECRETS["meta"],
        "SHOPIFY_WEBHOOK_SECRET": WEBHOOK_SECRETS["shopify"],
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRETS["stripe"],
        "WOOCOMMERCE_WEBHOOK_SECRET": WEBHOOK_SECRETS["woocommerce"],
        "ALLOW_UNVERIFIED_WEBHOOKS": "false",
        "STRIPE_WEBHOOK_TOLERANCE": "300",
        "META_VERIFY_TOKEN": "meta-verify-token",
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("ENCRYPTION_KEY_PREVIOUS", raising=False)

    return env_vars


@pytest.fixture
def mock_config_factory() -> Callable[..., MagicMock]:
    """
    Factory for ConfigurationProvider mocks backed by a flat dict.

    Usage:
        config = mock_config_factory({"webhook.allow_unverified": True})
    """
    def _create(values: dict[str, Any] | None = None, production: bool = False) -> MagicMock:
        data = {
            f"webhook.secrets.{name}": secret for name, secret in WEBHOOK_SECRETS.items()
        }
        data["webhook.allow_unverified"] = False
        data.update(values or {})

        config = MagicMock()
        config.get.side_effect = lambda key, default=None: data.get(key, default)
        config.is_production.return_value = production
        return config

    return _create


@pytest.fixture
def webhook_secrets() -> dict[str, str]:
    """Provider secrets configured by mock_env_vars."""
    return dict(WEBHOOK_SECRETS)


# =============================================================================
# Encryption Fixtures
# =============================================================================


@pytest.fixture
def encryption_service() -> EncryptionService:
    """Encryption service with a fixed test key."""
    return EncryptionService(key=derive_key(TEST_ENCRYPTION_KEY))


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Async session bound to the in-memory engine."""
    factory = async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


@pytest.fixture
def mock_async_db_session():
    """Create mock async database session with common operations."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.get_bind = MagicMock()
    return session
