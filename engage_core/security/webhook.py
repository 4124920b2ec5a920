"""
Webhook Security Module.

Provides signature validation for inbound provider webhooks using Strategy Pattern.
Supports one verification strategy per provider:
- Meta (x-hub-signature-256: "sha256=" + hex HMAC-SHA256)
- Shopify (x-shopify-hmac-sha256: base64 HMAC-SHA256)
- Stripe (stripe-signature: "t=<ts>,v1=<hex>" over "<ts>.<body>", replay window)
- WooCommerce (x-wc-webhook-signature: base64 HMAC-SHA256, header optional)

Security Features:
- HMAC-SHA256 over the raw, unparsed request body
- Constant-time comparison of signature bytes
- Stripe timestamp tolerance against replayed deliveries
- IP logging for failed authentication attempts
- Fail-closed by default when a provider secret or endpoint marker is missing

Design Patterns:
- Strategy Pattern for verification algorithms (OCP compliance)
- Factory Pattern for verifier selection
- Guard object usable as a FastAPI dependency

Usage:
    from engage_core.security.webhook import WebhookAuthDep, webhook_provider

    @router.post("/webhooks/shopify")
    @webhook_provider("shopify")
    async def shopify_webhook(auth: WebhookAuthDep) -> WebhookAck:
        ...
"""

import base64
import binascii
import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Annotated, Any, Callable, Mapping, Optional, TypeVar

from fastapi import Depends, HTTPException, Request, status

from engage_core.providers import ConfigurationProvider, get_configuration_provider

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_STRIPE_TOLERANCE_SECONDS = 300
WEBHOOK_PROVIDER_ATTR = "__webhook_provider__"


# =============================================================================
# Enums & Data Classes
# =============================================================================

class WebhookProvider(str, Enum):
    """Supported inbound webhook providers."""
    META = "meta"
    SHOPIFY = "shopify"
    STRIPE = "stripe"
    WOOCOMMERCE = "woocommerce"


class WebhookAuthResult(Enum):
    """Result of webhook authentication."""
    SUCCESS = "success"
    MISSING_SIGNATURE = "missing_signature"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED_SIGNATURE = "malformed_signature"
    TIMESTAMP_EXPIRED = "timestamp_expired"
    SECRET_NOT_CONFIGURED = "secret_not_configured"
    PROVIDER_NOT_DECLARED = "provider_not_declared"
    SKIPPED = "skipped"


@dataclass
class WebhookAuthContext:
    """
    Context object containing webhook authentication result.

    Attributes:
        verified: Whether the signature was checked and matched.
        result: The authentication result enum.
        provider: The webhook provider (if declared).
        client_ip: The client IP address.
        error_message: Optional error message for failed auth.
        allowed: Whether the request may reach the handler. Always true
            when verified; may be true without verification for the
            tolerated cases (WooCommerce without a header, fail-open mode).
    """
    verified: bool
    result: WebhookAuthResult
    provider: Optional[WebhookProvider] = None
    client_ip: Optional[str] = None
    error_message: Optional[str] = None
    allowed: bool = False

    def __post_init__(self) -> None:
        if self.verified:
            self.allowed = True


def _get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup for plain dicts and Starlette Headers."""
    value = headers.get(name)
    if value is not None:
        return value
    for header_name, header_value in headers.items():
        if header_name.lower() == name:
            return header_value
    return None


def _hmac_sha256(secret: str, message: bytes) -> bytes:
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=message,
        digestmod=hashlib.sha256,
    ).digest()


# =============================================================================
# Abstract Webhook Verifier Interface (Strategy Pattern)
# =============================================================================

class IWebhookVerifier(ABC):
    """
    Abstract interface for webhook verification strategies.

    Each concrete implementation handles one provider's header format.
    Verifiers are pure: they see only the raw body, the headers, and the
    shared secret, and never raise; every outcome is a WebhookAuthContext.

    Attributes:
        SIGNATURE_HEADER: Lower-case name of the header carrying the signature.
        ALLOW_MISSING_SIGNATURE: Whether an absent header is tolerated.
    """

    SIGNATURE_HEADER: str = ""
    ALLOW_MISSING_SIGNATURE: bool = False

    @abstractmethod
    def get_provider(self) -> WebhookProvider:
        """Get the provider this verifier handles."""
        ...

    @abstractmethod
    def generate_signature(self, payload: bytes, secret: str, **kwargs: Any) -> str:
        """
        Produce a valid signature header value for payload.

        Args:
            payload: Raw request body.
            secret: Provider shared secret.

        Returns:
            str: The header value the provider would send.
        """
        ...

    @abstractmethod
    def _check(
        self,
        payload: bytes,
        signature: str,
        secret: str,
        now: Optional[float],
    ) -> WebhookAuthContext:
        """Verify a present signature header value."""
        ...

    def verify(
        self,
        payload: bytes,
        headers: Mapping[str, str],
        secret: str,
        now: Optional[float] = None,
    ) -> WebhookAuthContext:
        """
        Verify the webhook signature.

        Args:
            payload: The raw, unparsed request body.
            headers: Request headers.
            secret: The provider shared secret.
            now: Current unix time override (seconds).

        Returns:
            WebhookAuthContext: Authentication context with verification result.
        """
        signature = _get_header(headers, self.SIGNATURE_HEADER)
        if not signature:
            return self.missing_signature()
        return self._check(payload, signature, secret, now)

    def missing_signature(self) -> WebhookAuthContext:
        """Context for a request that carries no signature header."""
        if self.ALLOW_MISSING_SIGNATURE:
            return self._context(
                WebhookAuthResult.SKIPPED,
                allowed=True,
                error_message=f"Missing {self.SIGNATURE_HEADER} header (tolerated)",
            )
        return self._context(
            WebhookAuthResult.MISSING_SIGNATURE,
            error_message=f"Missing {self.SIGNATURE_HEADER} header",
        )

    def _context(
        self,
        result: WebhookAuthResult,
        error_message: Optional[str] = None,
        allowed: bool = False,
    ) -> WebhookAuthContext:
        return WebhookAuthContext(
            verified=result == WebhookAuthResult.SUCCESS,
            result=result,
            provider=self.get_provider(),
            error_message=error_message,
            allowed=allowed,
        )


# =============================================================================
# Provider Verifier Implementations
# =============================================================================

class MetaSignatureVerifier(IWebhookVerifier):
    """
    Meta (Facebook / Instagram / WhatsApp) webhook verifier.

    The header value must equal "sha256=" + hex(HMAC-SHA256(app_secret, body)).
    The whole prefixed string is compared.
    """

    SIGNATURE_HEADER = "x-hub-signature-256"
    SIGNATURE_PREFIX = "sha256="

    def get_provider(self) -> WebhookProvider:
        return WebhookProvider.META

    def generate_signature(self, payload: bytes, secret: str, **kwargs: Any) -> str:
        return self.SIGNATURE_PREFIX + _hmac_sha256(secret, payload).hex()

    def _check(self, payload, signature, secret, now):
        expected = self.generate_signature(payload, secret)
        if hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            return self._context(WebhookAuthResult.SUCCESS)
        return self._context(WebhookAuthResult.INVALID_SIGNATURE, "Invalid signature")


class _Base64SignatureVerifier(IWebhookVerifier):
    """Shared logic for providers that send base64(HMAC-SHA256(secret, body))."""

    def generate_signature(self, payload: bytes, secret: str, **kwargs: Any) -> str:
        return base64.b64encode(_hmac_sha256(secret, payload)).decode("ascii")

    def _check(self, payload, signature, secret, now):
        try:
            provided = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError):
            return self._context(WebhookAuthResult.INVALID_SIGNATURE, "Invalid signature")

        if hmac.compare_digest(_hmac_sha256(secret, payload), provided):
            return self._context(WebhookAuthResult.SUCCESS)
        return self._context(WebhookAuthResult.INVALID_SIGNATURE, "Invalid signature")


class ShopifySignatureVerifier(_Base64SignatureVerifier):
    """Shopify webhook verifier (x-shopify-hmac-sha256, base64)."""

    SIGNATURE_HEADER = "x-shopify-hmac-sha256"

    def get_provider(self) -> WebhookProvider:
        return WebhookProvider.SHOPIFY


class WooCommerceSignatureVerifier(_Base64SignatureVerifier):
    """
    WooCommerce webhook verifier (x-wc-webhook-signature, base64).

    WooCommerce sends an unsigned ping when a webhook is first saved, so a
    request without the header is let through and logged. A header that is
    present but wrong is still rejected.
    """

    SIGNATURE_HEADER = "x-wc-webhook-signature"
    ALLOW_MISSING_SIGNATURE = True

    def get_provider(self) -> WebhookProvider:
        return WebhookProvider.WOOCOMMERCE


class StripeSignatureVerifier(IWebhookVerifier):
    """
    Stripe webhook verifier.

    Header format: "t=<unix-seconds>,v1=<hex>[,v1=<hex>...]". The signed
    message is "<t>." followed by the raw body. Deliveries older than the
    tolerance are rejected even when the MAC matches.
    """

    SIGNATURE_HEADER = "stripe-signature"

    def __init__(self, tolerance_seconds: int = DEFAULT_STRIPE_TOLERANCE_SECONDS) -> None:
        """
        Initialize the Stripe verifier.

        Args:
            tolerance_seconds: Maximum accepted age of the signed timestamp.
        """
        self.tolerance_seconds = tolerance_seconds

    def get_provider(self) -> WebhookProvider:
        return WebhookProvider.STRIPE

    def generate_signature(self, payload: bytes, secret: str, **kwargs: Any) -> str:
        """
        Produce a Stripe-Signature header value.

        Args:
            payload: Raw request body.
            secret: Endpoint signing secret.
            timestamp: Optional unix seconds (defaults to now).
        """
        timestamp = int(kwargs.get("timestamp") or time.time())
        signed = f"{timestamp}.".encode("utf-8") + payload
        return f"t={timestamp},v1={_hmac_sha256(secret, signed).hex()}"

    @staticmethod
    def parse_header(header: str) -> tuple[Optional[str], list[str]]:
        """
        Split a Stripe-Signature header into its timestamp and v1 signatures.

        Returns:
            (timestamp or None, list of v1 hex values)
        """
        timestamp: Optional[str] = None
        signatures: list[str] = []
        for part in header.split(","):
            name, sep, value = part.strip().partition("=")
            if not sep:
                continue
            if name == "t":
                timestamp = value
            elif name == "v1":
                signatures.append(value)
        return timestamp, signatures

    def _check(self, payload, signature, secret, now):
        timestamp, signatures = self.parse_header(signature)
        if not timestamp or not signatures:
            return self._context(
                WebhookAuthResult.MALFORMED_SIGNATURE,
                "Malformed stripe-signature header",
            )

        try:
            signed_at = int(timestamp)
        except ValueError:
            return self._context(
                WebhookAuthResult.MALFORMED_SIGNATURE,
                "Malformed stripe-signature header",
            )

        current = time.time() if now is None else now
        if current - signed_at > self.tolerance_seconds:
            return self._context(
                WebhookAuthResult.TIMESTAMP_EXPIRED,
                "Webhook timestamp outside tolerance",
            )

        signed = f"{timestamp}.".encode("utf-8") + payload
        expected = _hmac_sha256(secret, signed).hex().encode("ascii")
        # Evaluate every candidate so timing does not depend on position
        matched = False
        for candidate in signatures:
            if hmac.compare_digest(expected, candidate.encode("utf-8")):
                matched = True

        if matched:
            return self._context(WebhookAuthResult.SUCCESS)
        return self._context(WebhookAuthResult.INVALID_SIGNATURE, "Invalid signature")


# =============================================================================
# Verifier Factory
# =============================================================================

class WebhookVerifierFactory:
    """
    Factory for webhook verifier instances.

    Follows the Factory Pattern to decouple verifier creation from usage.
    Supports registration of custom verifiers for extensibility.

    Example:
        factory = WebhookVerifierFactory()
        verifier = factory.get_verifier(WebhookProvider.STRIPE)
    """

    def __init__(self, stripe_tolerance_seconds: int = DEFAULT_STRIPE_TOLERANCE_SECONDS) -> None:
        """Initialize the factory with the default verifiers."""
        self._verifiers: dict[WebhookProvider, IWebhookVerifier] = {}
        self._register_default_verifiers(stripe_tolerance_seconds)

    def _register_default_verifiers(self, stripe_tolerance_seconds: int) -> None:
        """Register the default verifier implementations."""
        self._verifiers[WebhookProvider.META] = MetaSignatureVerifier()
        self._verifiers[WebhookProvider.SHOPIFY] = ShopifySignatureVerifier()
        self._verifiers[WebhookProvider.STRIPE] = StripeSignatureVerifier(stripe_tolerance_seconds)
        self._verifiers[WebhookProvider.WOOCOMMERCE] = WooCommerceSignatureVerifier()

    def get_verifier(self, provider: WebhookProvider | str) -> IWebhookVerifier:
        """
        Get a verifier instance by provider.

        Raises:
            ValueError: If the provider is not registered.
        """
        verifier = self._verifiers.get(WebhookProvider(provider))
        if verifier is None:
            raise ValueError(f"Unknown webhook provider: {provider}")
        return verifier

    def register_verifier(
        self,
        provider: WebhookProvider,
        verifier: IWebhookVerifier,
    ) -> None:
        """Register a custom verifier implementation."""
        self._verifiers[provider] = verifier
        logger.info(f"Registered custom verifier: {provider.value}")

    def get_available_providers(self) -> list[WebhookProvider]:
        """Get list of registered providers."""
        return list(self._verifiers.keys())


# =============================================================================
# Endpoint Marker
# =============================================================================

F = TypeVar("F", bound=Callable[..., Any])


def webhook_provider(provider: WebhookProvider | str) -> Callable[[F], F]:
    """
    Declare which provider signs requests to the decorated endpoint.

    The guard reads this marker from the matched route's endpoint.

    Raises:
        ValueError: If provider is not a known WebhookProvider.
    """
    resolved = WebhookProvider(provider)

    def decorator(func: F) -> F:
        setattr(func, WEBHOOK_PROVIDER_ATTR, resolved)
        return func

    return decorator


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request.

    Args:
        request: The FastAPI Request object.

    Returns:
        str: The client IP address.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# =============================================================================
# Signature Guard
# =============================================================================

class WebhookSignatureGuard:
    """
    Gate for inbound webhook handlers.

    Steps, in order:
        1. Resolve the provider declared by the endpoint.
        2. Require the provider's signature header (WooCommerce excepted).
        3. Resolve the provider's shared secret from configuration.
        4. Delegate to the provider verifier.

    Steps 1 and 3 fail closed unless ALLOW_UNVERIFIED_WEBHOOKS is set
    outside production.
    """

    def __init__(
        self,
        provider: WebhookProvider | str | None = None,
        config: Optional[ConfigurationProvider] = None,
        factory: Optional[WebhookVerifierFactory] = None,
    ) -> None:
        """
        Initialize the guard.

        Args:
            provider: Fixed provider. If None, read from the endpoint marker.
            config: Configuration provider. Defaults to the global one.
            factory: Verifier factory. Defaults to the global one.
        """
        self._provider = WebhookProvider(provider) if provider is not None else None
        self._config = config
        self._factory = factory

    @property
    def config(self) -> ConfigurationProvider:
        return self._config or get_configuration_provider()

    @property
    def factory(self) -> WebhookVerifierFactory:
        return self._factory or get_verifier_factory()

    def allows_unverified(self) -> bool:
        """Check whether unverifiable requests may pass (never in production)."""
        if not self.config.get("webhook.allow_unverified", False):
            return False
        if self.config.is_production():
            logger.warning(
                "ALLOW_UNVERIFIED_WEBHOOKS is ignored in production; "
                "unverifiable webhooks are rejected"
            )
            return False
        return True

    def _unverifiable(
        self,
        result: WebhookAuthResult,
        message: str,
        provider: Optional[WebhookProvider],
        client_ip: Optional[str],
    ) -> WebhookAuthContext:
        allowed = self.allows_unverified()
        logger.warning(
            f"Webhook {'allowed' if allowed else 'rejected'} without verification: "
            f"{message}. provider={provider.value if provider else None}, ip={client_ip}"
        )
        return WebhookAuthContext(
            verified=False,
            result=result,
            provider=provider,
            client_ip=client_ip,
            error_message=message,
            allowed=allowed,
        )

    def authenticate(
        self,
        provider: WebhookProvider | str | None,
        payload: bytes,
        headers: Mapping[str, str],
        client_ip: Optional[str] = None,
        now: Optional[float] = None,
    ) -> WebhookAuthContext:
        """
        Authenticate one webhook delivery.

        Args:
            provider: Provider declared by the endpoint, or None.
            payload: Raw, unparsed request body.
            headers: Request headers.
            client_ip: Client IP address for logging.
            now: Current unix time override (seconds).

        Returns:
            WebhookAuthContext: Authentication result; check `allowed`.
        """
        if provider is None:
            return self._unverifiable(
                WebhookAuthResult.PROVIDER_NOT_DECLARED,
                "No webhook provider declared for endpoint",
                None,
                client_ip,
            )

        provider = WebhookProvider(provider)
        verifier = self.factory.get_verifier(provider)

        if not _get_header(headers, verifier.SIGNATURE_HEADER):
            context = replace(verifier.missing_signature(), client_ip=client_ip)
            if context.allowed:
                logger.warning(
                    f"Webhook without {verifier.SIGNATURE_HEADER} header allowed. "
                    f"provider={provider.value}, ip={client_ip}"
                )
            else:
                logger.warning(
                    f"Webhook verification failed: Missing signature header. "
                    f"provider={provider.value}, ip={client_ip}"
                )
            return context

        secret = self.config.get(f"webhook.secrets.{provider.value}")
        if not secret:
            return self._unverifiable(
                WebhookAuthResult.SECRET_NOT_CONFIGURED,
                "Webhook secret not configured",
                provider,
                client_ip,
            )

        context = replace(
            verifier.verify(payload, headers, secret, now=now),
            client_ip=client_ip,
        )
        if context.verified:
            logger.debug(
                f"Webhook verification successful. provider={provider.value}, ip={client_ip}"
            )
        else:
            logger.warning(
                f"Webhook verification failed: {context.result.value}. "
                f"provider={provider.value}, ip={client_ip}"
            )
        return context

    def resolve_provider(self, request: Request) -> Optional[WebhookProvider]:
        """Provider fixed on the guard, else the matched endpoint's marker."""
        if self._provider is not None:
            return self._provider
        endpoint = request.scope.get("endpoint")
        return getattr(endpoint, WEBHOOK_PROVIDER_ATTR, None)

    async def __call__(self, request: Request) -> WebhookAuthContext:
        """
        FastAPI dependency entry point.

        Raises:
            HTTPException: 401 when the delivery is not allowed.
        """
        payload = await request.body()
        context = self.authenticate(
            self.resolve_provider(request),
            payload,
            request.headers,
            client_ip=get_client_ip(request),
        )
        request.state.webhook_auth = context

        if not context.allowed:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=context.error_message or "Invalid webhook signature",
            )
        return context


# =============================================================================
# Singleton Instances
# =============================================================================

_verifier_factory: Optional[WebhookVerifierFactory] = None
_webhook_signature_guard: Optional[WebhookSignatureGuard] = None


def get_verifier_factory() -> WebhookVerifierFactory:
    """
    Get the singleton WebhookVerifierFactory instance.

    Returns:
        WebhookVerifierFactory: The verifier factory.
    """
    global _verifier_factory
    if _verifier_factory is None:
        config = get_configuration_provider()
        _verifier_factory = WebhookVerifierFactory(
            stripe_tolerance_seconds=int(
                config.get("webhook.stripe_tolerance_seconds", DEFAULT_STRIPE_TOLERANCE_SECONDS)
            )
        )
    return _verifier_factory


def get_webhook_signature_guard() -> WebhookSignatureGuard:
    """
    Get the singleton WebhookSignatureGuard instance.

    Returns:
        WebhookSignatureGuard: Guard reading the provider from endpoint markers.
    """
    global _webhook_signature_guard
    if _webhook_signature_guard is None:
        _webhook_signature_guard = WebhookSignatureGuard()
    return _webhook_signature_guard


def reset_webhook_security() -> None:
    """Reset singleton instances (for testing)."""
    global _verifier_factory, _webhook_signature_guard
    _verifier_factory = None
    _webhook_signature_guard = None


async def verify_webhook_signature(request: Request) -> WebhookAuthContext:
    """FastAPI dependency running the global guard."""
    return await get_webhook_signature_guard()(request)


WebhookAuthDep = Annotated[WebhookAuthContext, Depends(verify_webhook_signature)]
