"""
Core security utilities for the vault.

Provides encryption services for tenant secrets and signature
verification for inbound provider webhooks.
"""

from engage_core.security.encryption import (
    DecryptionError,
    EncryptionConfigError,
    EncryptionError,
    EncryptionService,
    PayloadDecodeError,
    get_encryption_service,
    reset_encryption_service,
)
from engage_core.security.webhook import (
    WebhookAuthContext,
    WebhookAuthDep,
    WebhookAuthResult,
    WebhookProvider,
    WebhookSignatureGuard,
    WebhookVerifierFactory,
    get_verifier_factory,
    get_webhook_signature_guard,
    reset_webhook_security,
    webhook_provider,
)

__all__ = [
    # Encryption
    "EncryptionService",
    "EncryptionError",
    "EncryptionConfigError",
    "DecryptionError",
    "PayloadDecodeError",
    "get_encryption_service",
    "reset_encryption_service",
    # Webhooks
    "WebhookProvider",
    "WebhookAuthResult",
    "WebhookAuthContext",
    "WebhookAuthDep",
    "WebhookSignatureGuard",
    "WebhookVerifierFactory",
    "get_verifier_factory",
    "get_webhook_signature_guard",
    "reset_webhook_security",
    "webhook_provider",
]
