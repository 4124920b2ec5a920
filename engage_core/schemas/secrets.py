"""
Secret Vault Schemas.

Pydantic models for the tenant secret API. Responses carry metadata only;
neither plaintext nor ciphertext is ever serialized.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(from_attributes=True)


class SecretStoreRequest(BaseModel):
    """Request to create or replace a secret value."""

    value: SecretStr = Field(..., description="Plaintext secret value")
    description: Optional[str] = Field(
        default=None, max_length=500, description="Human-readable note")
    expires_at: Optional[datetime] = Field(
        default=None, description="Soft expiry; the secret reads as absent afterwards")


class SecretMetadata(BaseSchema):
    """Secret metadata without the encrypted value."""

    id: str
    tenant_id: str
    key: str
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    rotated_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime


class SecretListResponse(BaseModel):
    """All secret metadata for one tenant."""

    secrets: list[SecretMetadata]
    total: int


class RotationResponse(BaseModel):
    """Result of a tenant-wide re-encryption sweep."""

    rotated: int = Field(..., description="Number of secrets re-encrypted")


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    error_code: Optional[str] = None
