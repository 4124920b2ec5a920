"""
Tenant Secret Model.

Stores tenant-scoped credentials (API tokens, webhook secrets, keys)
as AES-256-GCM ciphertext. Plaintext never reaches this table; values are
encrypted by EncryptionService before any write.

Lifecycle:
    - Created at version 1 on the first store for a (tenant_id, key) pair
    - Replaced in place on later stores: version + 1, rotated_at = now
    - Re-wrapped by the rotation sweep the same way
    - Expired rows stay in the table but read as absent
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from engage_core.database.base import Base, TimestampMixin, UUIDPrimaryKey, as_utc, utc_now


class Secret(Base, TimestampMixin):
    """
    Encrypted credential owned by one tenant.

    Attributes:
        id: UUID primary key.
        tenant_id: Owning tenant identifier.
        key: Secret name, unique per tenant (e.g. "whatsapp_access_token").
        encrypted_value: base64(nonce ‖ ciphertext ‖ tag) blob.
        description: Optional human-readable note.
        expires_at: Optional soft-expiry timestamp.
        rotated_at: Last time the ciphertext was replaced.
        version: Starts at 1, incremented on every replacement.
    """

    __tablename__ = "secrets"
    __table_args__ = (
        UniqueConstraint("tenant_id", "key", name="uq_secrets_tenant_key"),
    )

    id: Mapped[UUIDPrimaryKey]

    tenant_id: Mapped[str] = mapped_column(
        String(64),
        index=True,
        nullable=False,
        comment="Owning tenant identifier",
    )
    key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Secret name, unique per tenant",
    )
    encrypted_value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="AES-256-GCM blob: base64(nonce + ciphertext + tag)",
    )
    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Soft expiry; expired secrets read as absent",
    )
    rotated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        server_default="1",
        nullable=False,
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether expires_at has passed."""
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return False
        return expires_at < (now or utc_now())

    def __repr__(self) -> str:
        return f"<Secret(tenant_id={self.tenant_id!r}, key={self.key!r}, version={self.version})>"
