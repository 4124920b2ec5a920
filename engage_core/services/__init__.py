"""
Core Services Package.

Provides the vault's domain services.
"""

from engage_core.services.secrets import (
    SecretsError,
    SecretsService,
    UnsupportedDialectError,
)

__all__ = [
    "SecretsService",
    "SecretsError",
    "UnsupportedDialectError",
]
