"""
Tenant Secrets Service.

Persistence and lifecycle for tenant-scoped credentials, built on
EncryptionService. Only ciphertext is written; plaintext leaves this
service solely through get_secret().

Write Strategy:
    - store_secret is one INSERT ... ON CONFLICT (tenant_id, key) DO UPDATE,
      so concurrent writers to the same new key cannot create duplicates
    - Replacements bump version by exactly 1 and stamp rotated_at
    - rotate_all_secrets re-wraps row by row with a version check and a
      commit per row; a failing row is logged and skipped

Design Principles:
    - Session and encryption service injected per instance
    - Every query filtered by tenant_id
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from engage_core.database.base import as_utc, utc_now
from engage_core.models import Secret
from engage_core.schemas.secrets import SecretMetadata
from engage_core.security.encryption import EncryptionService, get_encryption_service

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class SecretsError(Exception):
    """Base exception for secret storage errors."""
    pass


class UnsupportedDialectError(SecretsError):
    """Raised when the bound database has no atomic upsert support."""
    pass


# Dialect-specific INSERT constructs that support ON CONFLICT DO UPDATE
_UPSERT_INSERTS: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# Every column except encrypted_value
_METADATA_COLUMNS = (
    Secret.id,
    Secret.tenant_id,
    Secret.key,
    Secret.description,
    Secret.expires_at,
    Secret.rotated_at,
    Secret.version,
    Secret.created_at,
    Secret.updated_at,
)


def to_secret_metadata(source: Row | Secret) -> SecretMetadata:
    """Project a result row or a loaded Secret onto metadata with aware UTC timestamps."""
    if isinstance(source, Secret):
        data = {column.key: getattr(source, column.key) for column in _METADATA_COLUMNS}
    else:
        data = dict(source._mapping)
    for field in ("expires_at", "rotated_at", "created_at", "updated_at"):
        data[field] = as_utc(data[field])
    return SecretMetadata.model_validate(data)


# =============================================================================
# Secrets Service
# =============================================================================

class SecretsService:
    """
    Service for storing, reading, rotating and deleting tenant secrets.
    """

    def __init__(
        self,
        session: AsyncSession,
        encryption_service: EncryptionService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize SecretsService with injectable dependencies.

        Args:
            session: Async database session.
            encryption_service: If None, uses the global singleton.
            clock: Returns the current aware UTC time. Defaults to utc_now.
        """
        self._session = session
        self._encryption = encryption_service or get_encryption_service()
        self._now = clock or utc_now

    def _tenant_key_filter(self, tenant_id: str, key: str) -> tuple:
        return (Secret.tenant_id == tenant_id, Secret.key == key)

    def _upsert_insert(self) -> Callable[..., Any]:
        dialect = self._session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise UnsupportedDialectError(
                f"Atomic secret upsert is not supported on dialect '{dialect}'"
            )
        return insert

    async def store_secret(
        self,
        tenant_id: str,
        key: str,
        value: str,
        description: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Secret:
        """
        Create or replace a secret.

        A new (tenant_id, key) starts at version 1. An existing one gets the
        new ciphertext, version + 1 and rotated_at = now; description and
        expiry change only when given.

        Args:
            tenant_id: Owning tenant.
            key: Secret name.
            value: Plaintext value. Encrypted before it reaches the database.
            description: Optional note.
            expires_at: Optional soft expiry (naive values are taken as UTC).

        Returns:
            Secret: The persisted row (ciphertext only).

        Raises:
            UnsupportedDialectError: If the database has no atomic upsert.
        """
        insert = self._upsert_insert()
        now = self._now()
        encrypted_value = self._encryption.encrypt(value)

        stmt = insert(Secret).values(
            id=str(uuid4()),
            tenant_id=tenant_id,
            key=key,
            encrypted_value=encrypted_value,
            description=description,
            expires_at=as_utc(expires_at),
            rotated_at=None,
            version=1,
            created_at=now,
            updated_at=now,
        )

        update_set: dict[str, Any] = {
            "encrypted_value": stmt.excluded.encrypted_value,
            "version": Secret.version + 1,
            "rotated_at": now,
            "updated_at": now,
        }
        if description is not None:
            update_set["description"] = stmt.excluded.description
        if expires_at is not None:
            update_set["expires_at"] = stmt.excluded.expires_at

        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "key"],
            set_=update_set,
        )

        await self._session.execute(stmt)
        await self._session.commit()

        result = await self._session.execute(
            select(Secret)
            .where(*self._tenant_key_filter(tenant_id, key))
            .execution_options(populate_existing=True)
        )
        secret = result.scalar_one()
        logger.info(f"Stored secret '{key}' for tenant {tenant_id} (version {secret.version})")
        return secret

    async def get_secret(self, tenant_id: str, key: str) -> Optional[str]:
        """
        Read and decrypt a secret.

        Returns:
            The plaintext, or None if the secret is absent or expired.

        Raises:
            DecryptionError: If the stored blob does not authenticate.
        """
        result = await self._session.execute(
            select(Secret.encrypted_value, Secret.expires_at)
            .where(*self._tenant_key_filter(tenant_id, key))
        )
        row = result.first()
        if row is None:
            return None

        expires_at = as_utc(row.expires_at)
        if expires_at is not None and expires_at < self._now():
            logger.debug(f"Secret '{key}' for tenant {tenant_id} has expired")
            return None

        return self._encryption.decrypt(row.encrypted_value)

    async def get_secret_metadata(self, tenant_id: str, key: str) -> Optional[SecretMetadata]:
        """Get metadata for one secret, without its encrypted value."""
        result = await self._session.execute(
            select(*_METADATA_COLUMNS).where(*self._tenant_key_filter(tenant_id, key))
        )
        row = result.first()
        return to_secret_metadata(row) if row is not None else None

    async def list_secrets(self, tenant_id: str) -> list[SecretMetadata]:
        """List metadata for all of a tenant's secrets, ordered by key."""
        result = await self._session.execute(
            select(*_METADATA_COLUMNS)
            .where(Secret.tenant_id == tenant_id)
            .order_by(Secret.key)
        )
        return [to_secret_metadata(row) for row in result.all()]

    async def rotate_all_secrets(self, tenant_id: str) -> int:
        """
        Re-encrypt every secret of a tenant under the current key.

        Each row is decrypted (current or previous key), re-encrypted with a
        fresh nonce and written only if its version is unchanged since it was
        read. Rows are committed one at a time; failures are logged and
        skipped so one bad row does not stop the sweep.

        Returns:
            int: Number of secrets actually rotated.
        """
        result = await self._session.execute(
            select(Secret.id, Secret.key, Secret.encrypted_value, Secret.version)
            .where(Secret.tenant_id == tenant_id)
            .order_by(Secret.key)
        )
        rows = result.all()

        rotated = 0
        for row in rows:
            try:
                plaintext = self._encryption.decrypt(row.encrypted_value)
                now = self._now()
                outcome = await self._session.execute(
                    update(Secret)
                    .where(Secret.id == row.id, Secret.version == row.version)
                    .values(
                        encrypted_value=self._encryption.encrypt(plaintext),
                        version=row.version + 1,
                        rotated_at=now,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                await self._session.commit()
            except Exception as e:
                await self._session.rollback()
                logger.error(
                    f"Failed to rotate secret '{row.key}' for tenant {tenant_id}: "
                    f"{type(e).__name__}"
                )
                continue

            if outcome.rowcount == 1:
                rotated += 1
            else:
                logger.warning(
                    f"Secret '{row.key}' for tenant {tenant_id} changed during rotation; skipped"
                )

        logger.info(f"Rotated {rotated}/{len(rows)} secrets for tenant {tenant_id}")
        return rotated

    async def delete_secret(self, tenant_id: str, key: str) -> bool:
        """
        Delete a secret.

        Returns:
            bool: True if a row was deleted.
        """
        result = await self._session.execute(
            delete(Secret)
            .where(*self._tenant_key_filter(tenant_id, key))
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()
        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted secret '{key}' for tenant {tenant_id}")
        return deleted

    async def has_secret(self, tenant_id: str, key: str) -> bool:
        """Check whether a readable (present, unexpired) secret exists."""
        result = await self._session.execute(
            select(Secret.expires_at)
            .where(*self._tenant_key_filter(tenant_id, key))
        )
        row = result.first()
        if row is None:
            return False
        expires_at = as_utc(row.expires_at)
        return expires_at is None or expires_at >= self._now()
