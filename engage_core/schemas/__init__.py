"""
Core Schemas Package.

Provides the Pydantic models used by the HTTP surface.
"""

from engage_core.schemas.secrets import (
    ErrorResponse,
    RotationResponse,
    SecretListResponse,
    SecretMetadata,
    SecretStoreRequest,
)
from engage_core.schemas.webhooks import WebhookAck

__all__ = [
    "SecretStoreRequest",
    "SecretMetadata",
    "SecretListResponse",
    "RotationResponse",
    "ErrorResponse",
    "WebhookAck",
]
