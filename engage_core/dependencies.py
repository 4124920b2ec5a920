"""
FastAPI Dependencies - Dependency Injection for API Routers.

Provides `Annotated[Service, Depends(get_service)]` patterns for
clean dependency injection in FastAPI route handlers.

Usage:
    from engage_core.dependencies import ConfigDep, SecretsServiceDep

    @router.get("/tenants/{tenant_id}/secrets")
    async def list_secrets(tenant_id: str, service: SecretsServiceDep):
        ...
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from engage_core.providers import ConfigurationProvider, get_configuration_provider
from engage_core.security.encryption import EncryptionService, get_encryption_service
from engage_core.services.secrets import SecretsService


# =============================================================================
# Configuration Dependencies
# =============================================================================

def get_config() -> ConfigurationProvider:
    """
    FastAPI dependency for configuration provider.

    Returns:
        ConfigurationProvider: The configuration provider instance
    """
    return get_configuration_provider()


# Type alias for dependency injection
ConfigDep = Annotated[ConfigurationProvider, Depends(get_config)]


# =============================================================================
# Database Session Dependencies
# =============================================================================

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for async database session.

    This is a re-export from engage_core.database.session for convenience.

    Yields:
        AsyncSession: Database session that auto-closes after request
    """
    from engage_core.database.session import get_db_session
    async for session in get_db_session():
        yield session


DbSessionDep = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# Vault Dependencies
# =============================================================================

def get_encryption() -> EncryptionService:
    """FastAPI dependency for the process-wide encryption service."""
    return get_encryption_service()


EncryptionServiceDep = Annotated[EncryptionService, Depends(get_encryption)]


def get_secrets_service(
    db: DbSessionDep,
    encryption: EncryptionServiceDep,
) -> SecretsService:
    """
    FastAPI dependency for a request-scoped SecretsService.

    Returns:
        SecretsService: Service bound to this request's session
    """
    return SecretsService(db, encryption)


SecretsServiceDep = Annotated[SecretsService, Depends(get_secrets_service)]
