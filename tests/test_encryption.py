"""
Tests for Secret Encryption Module.

Tests AES-256-GCM envelope encryption, blob format, key setup and
failure behavior.
"""

import base64
import hashlib

import pytest

from engage_core.providers import reset_configuration_provider
from engage_core.security.encryption import (
    DEV_FALLBACK_KEY,
    NONCE_LENGTH,
    TAG_LENGTH,
    DecryptionError,
    EncryptionConfigError,
    EncryptionError,
    EncryptionService,
    PayloadDecodeError,
    derive_key,
    get_encryption_service,
    reset_encryption_service,
)


def _flip_byte(blob: str, index: int) -> str:
    raw = bytearray(base64.b64decode(blob))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestEncryptDecrypt:
    """Tests for encrypt/decrypt round trips."""

    @pytest.mark.parametrize(
        "plaintext",
        [
            "EAAGm0PX4ZCpsBA-whatsapp-token",
            "",
            "ünïcødé 秘密 🔑",
            "x" * 10_000,
        ],
    )
    def test_round_trip(self, encryption_service, plaintext):
        """decrypt(encrypt(p)) returns p."""
        blob = encryption_service.encrypt(plaintext)
        assert encryption_service.decrypt(blob) == plaintext

    def test_fresh_nonce_per_call(self, encryption_service):
        """Encrypting the same value twice yields different blobs."""
        first = encryption_service.encrypt("same value")
        second = encryption_service.encrypt("same value")

        assert first != second
        assert encryption_service.decrypt(first) == "same value"
        assert encryption_service.decrypt(second) == "same value"

    def test_blob_layout(self, encryption_service):
        """Blob is base64(nonce[16] + ciphertext[N] + tag[16])."""
        plaintext = "sk_live_123"
        raw = base64.b64decode(encryption_service.encrypt(plaintext), validate=True)

        assert len(raw) == NONCE_LENGTH + len(plaintext.encode("utf-8")) + TAG_LENGTH
        assert plaintext.encode("utf-8") not in raw

    def test_plaintext_not_in_blob(self, encryption_service):
        """Blob does not contain the plaintext."""
        blob = encryption_service.encrypt("super-secret-token")
        assert "super-secret-token" not in blob


class TestTampering:
    """Tests that any modification of the blob is rejected."""

    def test_every_ciphertext_and_tag_byte(self, encryption_service):
        """Flipping any byte after the nonce fails authentication."""
        blob = encryption_service.encrypt("tamper me")
        total = len(base64.b64decode(blob))

        for index in range(NONCE_LENGTH, total):
            with pytest.raises(DecryptionError):
                encryption_service.decrypt(_flip_byte(blob, index))

    def test_nonce_byte(self, encryption_service):
        """Flipping a nonce byte fails authentication."""
        blob = encryption_service.encrypt("tamper me")
        with pytest.raises(DecryptionError):
            encryption_service.decrypt(_flip_byte(blob, 0))

    def test_wrong_key(self, encryption_service):
        """A different key cannot decrypt."""
        blob = encryption_service.encrypt("value")
        other = EncryptionService(key=derive_key("another-key"))

        with pytest.raises(DecryptionError):
            other.decrypt(blob)

    @pytest.mark.parametrize(
        "blob",
        [
            "not base64 !!",
            base64.b64encode(b"short").decode(),
            base64.b64encode(b"\x00" * (NONCE_LENGTH + TAG_LENGTH - 1)).decode(),
            "",
        ],
    )
    def test_malformed_blob(self, encryption_service, blob):
        """Malformed input raises DecryptionError."""
        with pytest.raises(DecryptionError):
            encryption_service.decrypt(blob)

    def test_errors_are_generic(self, encryption_service):
        """Tag failures and format failures carry the same message."""
        blob = encryption_service.encrypt("value")

        with pytest.raises(DecryptionError) as tag_error:
            encryption_service.decrypt(_flip_byte(blob, NONCE_LENGTH))
        with pytest.raises(DecryptionError) as format_error:
            encryption_service.decrypt("@@@")

        assert str(tag_error.value) == str(format_error.value) == "Decryption failed"


class TestObjectEncryption:
    """Tests for encrypt_object/decrypt_object."""

    def test_round_trip(self, encryption_service):
        """JSON values survive a round trip."""
        obj = {"access_token": "abc", "scopes": ["read", "write"], "expires": 3600}
        blob = encryption_service.encrypt_object(obj)
        assert encryption_service.decrypt_object(blob) == obj

    def test_non_json_plaintext(self, encryption_service):
        """Valid blob with non-JSON plaintext raises PayloadDecodeError."""
        blob = encryption_service.encrypt("not json {")

        with pytest.raises(PayloadDecodeError):
            encryption_service.decrypt_object(blob)

    def test_payload_error_is_decryption_error(self):
        """PayloadDecodeError is a DecryptionError."""
        assert issubclass(PayloadDecodeError, DecryptionError)

    def test_tampered_object_blob(self, encryption_service):
        """Tampered object blobs fail like plain ones."""
        blob = encryption_service.encrypt_object({"a": 1})
        with pytest.raises(DecryptionError):
            encryption_service.decrypt_object(_flip_byte(blob, NONCE_LENGTH + 1))

    def test_unserializable_object(self, encryption_service):
        """Objects json cannot encode raise EncryptionError."""
        with pytest.raises(EncryptionError):
            encryption_service.encrypt_object({"value": object()})


class TestKeySetup:
    """Tests for key derivation and configuration."""

    def test_key_derived_with_sha256(self, mock_env_vars, monkeypatch):
        """ENCRYPTION_KEY is hashed with SHA-256 to form the AES key."""
        monkeypatch.setenv("ENCRYPTION_KEY", "operator-key")
        reset_configuration_provider()

        service = EncryptionService()
        reference = EncryptionService(key=hashlib.sha256(b"operator-key").digest())

        assert reference.decrypt(service.encrypt("x")) == "x"

    def test_missing_key_in_production(self, mock_env_vars, monkeypatch):
        """Production without ENCRYPTION_KEY fails hard."""
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("ENCRYPTION_KEY", "")
        reset_configuration_provider()

        with pytest.raises(EncryptionConfigError):
            EncryptionService()

    def test_missing_key_in_development(self, mock_env_vars, monkeypatch, caplog):
        """Non-production falls back to the development key with a warning."""
        monkeypatch.setenv("ENCRYPTION_KEY", "")
        reset_configuration_provider()

        service = EncryptionService()
        reference = EncryptionService(key=derive_key(DEV_FALLBACK_KEY))

        assert reference.decrypt(service.encrypt("dev")) == "dev"
        assert "development key" in caplog.text

    def test_invalid_key_length(self):
        """Injected keys must be 32 bytes."""
        with pytest.raises(EncryptionConfigError):
            EncryptionService(key=b"too-short")

    def test_previous_keys_decrypt(self, mock_env_vars, monkeypatch):
        """Blobs from a previous key decrypt; new blobs use the current key."""
        old = EncryptionService(key=derive_key("old-key"))
        old_blob = old.encrypt("legacy")

        monkeypatch.setenv("ENCRYPTION_KEY", "new-key")
        monkeypatch.setenv("ENCRYPTION_KEY_PREVIOUS", "old-key")
        reset_configuration_provider()

        service = EncryptionService()
        assert service.previous_key_count == 1
        assert service.decrypt(old_blob) == "legacy"

        with pytest.raises(DecryptionError):
            old.decrypt(service.encrypt("fresh"))

    def test_generate_key(self):
        """generate_key returns 32 random bytes, base64 encoded."""
        first = EncryptionService.generate_key()
        second = EncryptionService.generate_key()

        assert len(base64.b64decode(first, validate=True)) == 32
        assert first != second


class TestSingleton:
    """Tests for the process-wide instance."""

    def test_singleton_and_reset(self, mock_env_vars):
        """get_encryption_service caches until reset."""
        first = get_encryption_service()
        assert get_encryption_service() is first

        reset_encryption_service()
        assert get_encryption_service() is not first
