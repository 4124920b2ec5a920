"""Engage core - tenant secret vault and webhook signature verification."""
from engage_core.logging_config import setup_logging
from engage_core.server import create_base_app
from engage_core import database

# Configuration
from engage_core.providers import (
    ConfigurationProvider,
    get_configuration_provider,
    get_settings,
    reset_configuration_provider,
)

# FastAPI Dependencies (for use with Annotated[..., Depends(...)])
from engage_core.dependencies import (
    ConfigDep,
    DbSessionDep,
    EncryptionServiceDep,
    SecretsServiceDep,
    get_config,
    get_db,
    get_encryption,
    get_secrets_service,
)

__all__ = [
    "create_base_app", "setup_logging", "database",
    # Configuration
    "ConfigurationProvider", "get_configuration_provider", "get_settings",
    "reset_configuration_provider",
    # FastAPI Dependencies
    "ConfigDep", "DbSessionDep", "EncryptionServiceDep", "SecretsServiceDep",
    "get_config", "get_db", "get_encryption", "get_secrets_service",
]
