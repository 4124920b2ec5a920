"""
Tenant Secrets Router.

Admin API for a tenant's credential vault. Responses carry metadata only;
plaintext is accepted on write and never returned.

Tenant authentication and authorization happen upstream; handlers trust
the tenant_id path parameter.
"""

import logging

from fastapi import APIRouter, HTTPException, Response, status

from engage_core.dependencies import SecretsServiceDep
from engage_core.schemas.secrets import (
    ErrorResponse,
    RotationResponse,
    SecretListResponse,
    SecretMetadata,
    SecretStoreRequest,
)
from engage_core.services.secrets import SecretsError, to_secret_metadata


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tenants/{tenant_id}/secrets", tags=["Secrets"])


def _not_found(key: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Secret '{key}' not found",
    )


@router.get("", response_model=SecretListResponse)
async def list_secrets(tenant_id: str, service: SecretsServiceDep) -> SecretListResponse:
    """List secret metadata for a tenant."""
    secrets = await service.list_secrets(tenant_id)
    return SecretListResponse(secrets=secrets, total=len(secrets))


@router.post(
    "/rotate",
    response_model=RotationResponse,
    responses={500: {"model": ErrorResponse}},
)
async def rotate_secrets(tenant_id: str, service: SecretsServiceDep) -> RotationResponse:
    """
    Re-encrypt every secret of the tenant under the current key.

    Partial failures are reported through the count, not as an error.
    """
    rotated = await service.rotate_all_secrets(tenant_id)
    return RotationResponse(rotated=rotated)


@router.put(
    "/{key}",
    response_model=SecretMetadata,
    responses={500: {"model": ErrorResponse}},
)
async def store_secret(
    tenant_id: str,
    key: str,
    body: SecretStoreRequest,
    service: SecretsServiceDep,
) -> SecretMetadata:
    """Create or replace a secret value."""
    try:
        secret = await service.store_secret(
            tenant_id,
            key,
            body.value.get_secret_value(),
            description=body.description,
            expires_at=body.expires_at,
        )
    except SecretsError as e:
        logger.error(f"Failed to store secret '{key}' for tenant {tenant_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Secret storage unavailable",
        )

    return to_secret_metadata(secret)


@router.get(
    "/{key}",
    response_model=SecretMetadata,
    responses={404: {"model": ErrorResponse}},
)
async def get_secret_metadata(
    tenant_id: str,
    key: str,
    service: SecretsServiceDep,
) -> SecretMetadata:
    """Get metadata for one secret."""
    metadata = await service.get_secret_metadata(tenant_id, key)
    if metadata is None:
        raise _not_found(key)
    return metadata


@router.head("/{key}")
async def secret_exists(tenant_id: str, key: str, service: SecretsServiceDep) -> Response:
    """Existence check; expired secrets count as absent."""
    if await service.has_secret(tenant_id, key):
        return Response(status_code=status.HTTP_200_OK)
    return Response(status_code=status.HTTP_404_NOT_FOUND)


@router.delete(
    "/{key}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_secret(tenant_id: str, key: str, service: SecretsServiceDep) -> Response:
    """Delete a secret."""
    if not await service.delete_secret(tenant_id, key):
        raise _not_found(key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

