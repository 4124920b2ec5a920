"""
Provider Webhook Router.

Inbound webhook receivers for Meta, Shopify, Stripe and WooCommerce.
Each endpoint declares its provider with @webhook_provider; the signature
guard runs as a dependency before the handler sees the body.

Event processing is handed off elsewhere; these receivers only verify
and acknowledge.
"""

import hmac
import logging

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

from engage_core.dependencies import ConfigDep
from engage_core.schemas.webhooks import WebhookAck
from engage_core.security.webhook import (
    WebhookAuthContext,
    WebhookAuthDep,
    WebhookProvider,
    webhook_provider,
)


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _ack(provider: WebhookProvider, auth: WebhookAuthContext) -> WebhookAck:
    logger.info(
        f"Webhook received: provider={provider.value}, "
        f"result={auth.result.value}, ip={auth.client_ip}"
    )
    return WebhookAck(provider=provider.value, verified=auth.verified)


# =============================================================================
# Meta
# =============================================================================

@router.get("/meta", response_class=PlainTextResponse)
async def meta_subscription_handshake(
    config: ConfigDep,
    mode: str = Query("", alias="hub.mode"),
    verify_token: str = Query("", alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
) -> str:
    """
    Meta webhook subscription verification.

    Echoes hub.challenge when hub.mode is "subscribe" and the verify token
    matches META_VERIFY_TOKEN.
    """
    expected = config.get("webhook.meta_verify_token", "")
    if (
        mode == "subscribe"
        and expected
        and hmac.compare_digest(verify_token.encode("utf-8"), expected.encode("utf-8"))
    ):
        logger.info("Meta webhook subscription verified")
        return challenge

    logger.warning("Meta webhook subscription verification failed")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Verification failed",
    )


@router.post("/meta", response_model=WebhookAck)
@webhook_provider(WebhookProvider.META)
async def meta_webhook(auth: WebhookAuthDep) -> WebhookAck:
    """Receive Meta (Facebook, Instagram, WhatsApp) events."""
    return _ack(WebhookProvider.META, auth)


# =============================================================================
# Commerce & Billing
# =============================================================================

@router.post("/shopify", response_model=WebhookAck)
@webhook_provider(WebhookProvider.SHOPIFY)
async def shopify_webhook(auth: WebhookAuthDep) -> WebhookAck:
    """Receive Shopify events."""
    return _ack(WebhookProvider.SHOPIFY, auth)


@router.post("/stripe", response_model=WebhookAck)
@webhook_provider(WebhookProvider.STRIPE)
async def stripe_webhook(auth: WebhookAuthDep) -> WebhookAck:
    """Receive Stripe events."""
    return _ack(WebhookProvider.STRIPE, auth)


@router.post("/woocommerce", response_model=WebhookAck)
@webhook_provider(WebhookProvider.WOOCOMMERCE)
async def woocommerce_webhook(auth: WebhookAuthDep) -> WebhookAck:
    """Receive WooCommerce events, including the unsigned creation ping."""
    return _ack(WebhookProvider.WOOCOMMERCE, auth)
