"""
Secret Encryption Module.

Provides AES-256-GCM envelope encryption for tenant credentials.

Security Features:
- AES-256-GCM with a fresh random 16-byte nonce per call (non-deterministic)
- 256-bit key derived from ENCRYPTION_KEY with SHA-256
- Self-describing blobs: base64(nonce[16] + ciphertext[N] + tag[16])
- Generic decryption errors that never reveal which region failed
- Optional previous keys (ENCRYPTION_KEY_PREVIOUS) accepted for decryption
  so stored secrets can be re-wrapped after a key change
"""

import base64
import binascii
import hashlib
import json
import logging
import os
import secrets
from typing import Any, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from engage_core.providers import get_configuration_provider

logger = logging.getLogger(__name__)


NONCE_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32

# Only ever used outside production; documented as unsafe.
DEV_FALLBACK_KEY = "dev-encryption-key-not-for-production-use"


# =============================================================================
# Exceptions
# =============================================================================

class EncryptionError(Exception):
    """Base error for the encryption layer."""


class EncryptionConfigError(EncryptionError):
    """Key material is missing or invalid."""


class DecryptionError(EncryptionError):
    """A blob could not be authenticated or decoded."""

    def __init__(self, message: str = "Decryption failed") -> None:
        super().__init__(message)


class PayloadDecodeError(DecryptionError):
    """Decrypted bytes are not valid JSON."""

    def __init__(self, message: str = "Decrypted payload is not valid JSON") -> None:
        super().__init__(message)


def derive_key(secret: str) -> bytes:
    """
    Derive the 32-byte AES key from configured secret material.

    Plain SHA-256 of the UTF-8 secret, no salt. Existing ciphertext depends
    on this exact derivation.
    """
    return hashlib.sha256(secret.encode("utf-8")).digest()


# =============================================================================
# Encryption Service
# =============================================================================

class EncryptionService:
    """
    Core encryption service using AES-256-GCM.

    Encrypts with the current key only. Decryption tries the current key
    first, then any previous keys in order.
    """

    def __init__(
        self,
        key: bytes | None = None,
        previous_keys: Sequence[bytes] | None = None,
    ) -> None:
        """
        Initialize encryption service.

        Args:
            key: Optional 32-byte AES key. If None, derived from configuration.
            previous_keys: Optional retired 32-byte keys accepted for decryption.
                If None and key is None, derived from configuration.
        """
        if key is None:
            config = get_configuration_provider()
            key = derive_key(self._resolve_key_material(config))
            if previous_keys is None:
                previous_keys = [
                    derive_key(material)
                    for material in config.get("security.previous_encryption_keys", [])
                ]

        for candidate in [key, *(previous_keys or [])]:
            if len(candidate) != KEY_LENGTH:
                raise EncryptionConfigError("Encryption key must be exactly 32 bytes (256 bits)")

        self._cipher = AESGCM(key)
        self._decrypt_ciphers = [self._cipher] + [AESGCM(k) for k in previous_keys or []]

    @staticmethod
    def _resolve_key_material(config: Any) -> str:
        material = config.get("security.encryption_key", "")
        if material:
            return material

        if config.is_production():
            raise EncryptionConfigError(
                "ENCRYPTION_KEY must be set in production. "
                "Generate one with: python scripts/generate_encryption_key.py"
            )

        logger.warning(
            "ENCRYPTION_KEY not set; using the built-in development key. "
            "Never run with this key outside local development."
        )
        return DEV_FALLBACK_KEY

    @property
    def previous_key_count(self) -> int:
        """Number of retired keys accepted for decryption."""
        return len(self._decrypt_ciphers) - 1

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt plaintext using AES-GCM with a random nonce.

        Args:
            plaintext: String to encrypt.

        Returns:
            base64(nonce + ciphertext + tag) as an ASCII string.
        """
        nonce = os.urandom(NONCE_LENGTH)
        # AESGCM returns ciphertext with the 16-byte tag appended
        sealed = self._cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a blob produced by encrypt().

        Args:
            blob: base64(nonce + ciphertext + tag).

        Returns:
            Decrypted plaintext string.

        Raises:
            DecryptionError: On malformed input or tag mismatch.
        """
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError):
            raise DecryptionError() from None

        if len(raw) < NONCE_LENGTH + TAG_LENGTH:
            raise DecryptionError()

        nonce = raw[:NONCE_LENGTH]
        sealed = raw[NONCE_LENGTH:]

        for cipher in self._decrypt_ciphers:
            try:
                plaintext_bytes = cipher.decrypt(nonce, sealed, None)
            except InvalidTag:
                continue
            try:
                return plaintext_bytes.decode("utf-8")
            except UnicodeDecodeError:
                raise DecryptionError() from None

        raise DecryptionError()

    def encrypt_object(self, obj: Any) -> str:
        """JSON-serialize obj and encrypt the result."""
        try:
            serialized = json.dumps(obj, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise EncryptionError(f"Value is not JSON serializable: {type(obj).__name__}") from e
        return self.encrypt(serialized)

    def decrypt_object(self, blob: str) -> Any:
        """
        Decrypt a blob produced by encrypt_object().

        Raises:
            DecryptionError: On malformed input or tag mismatch.
            PayloadDecodeError: If the plaintext is not valid JSON.
        """
        plaintext = self.decrypt(blob)
        try:
            return json.loads(plaintext)
        except json.JSONDecodeError:
            raise PayloadDecodeError() from None

    @staticmethod
    def generate_key() -> str:
        """Generate a random 32-byte key, base64 encoded, for ENCRYPTION_KEY."""
        return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


# Global singleton
_encryption_service: EncryptionService | None = None


def get_encryption_service() -> EncryptionService:
    """Get or create the global encryption service instance."""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService()
    return _encryption_service


def reset_encryption_service() -> None:
    """Reset the encryption singleton (for testing)."""
    global _encryption_service
    _encryption_service = None
