"""
Hosted checkout for the one-time premium report.

Handles:
- Lemon Squeezy checkouts (JSON:API over httpx), the default provider
- Stripe Checkout sessions in payment mode

Both attach the buyer's email, account id and analysis id as custom data so
the webhook reconciler can bind the payment to the analysis.
"""

import asyncio
from typing import Optional

import httpx
import stripe
import structlog

from app.core.config import Settings
from app.models import Account
from app.services.errors import ConfigurationError, InvalidInputError, UpstreamError
from app.services.payment_events import LEMONSQUEEZY, STRIPE

logger = structlog.get_logger()

CHECKOUT_PROVIDERS = (LEMONSQUEEZY, STRIPE)
CHECKOUT_SOURCE = "upgrade-page"
LEMONSQUEEZY_TIMEOUT = 15.0


def _require(settings: Settings, *names: str) -> None:
    missing = [name.upper() for name in names if not getattr(settings, name)]
    if missing:
        raise ConfigurationError(f"Missing checkout config: {', '.join(missing)}")


# =============================================================================
# Lemon Squeezy
# =============================================================================


def build_lemonsqueezy_payload(
    account: Account, analysis_id: str, settings: Settings, success_url: str
) -> dict:
    return {
        "data": {
            "type": "checkouts",
            "attributes": {
                "checkout_data": {
                    "email": account.email,
                    "custom": {
                        "email": account.email,
                        "user_id": account.id,
                        "analysis_id": analysis_id,
                        "source": CHECKOUT_SOURCE,
                    },
                },
                "checkout_options": {"embed": False},
                "product_options": {"redirect_url": success_url},
                "test_mode": settings.lemonsqueezy_test_mode,
            },
            "relationships": {
                "store": {"data": {"type": "stores", "id": str(settings.lemonsqueezy_store_id)}},
                "variant": {"data": {"type": "variants", "id": str(settings.lemonsqueezy_variant_id)}},
            },
        }
    }


async def create_lemonsqueezy_checkout(
    account: Account,
    analysis_id: str,
    settings: Settings,
    success_url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Create a Lemon Squeezy checkout and return its URL."""
    _require(settings, "lemonsqueezy_api_key", "lemonsqueezy_store_id", "lemonsqueezy_variant_id")

    headers = {
        "Authorization": f"Bearer {settings.lemonsqueezy_api_key}",
        "Accept": "application/vnd.api+json",
        "Content-Type": "application/vnd.api+json",
    }
    payload = build_lemonsqueezy_payload(account, analysis_id, settings, success_url)

    try:
        async with httpx.AsyncClient(
            base_url=settings.lemonsqueezy_api_base,
            timeout=LEMONSQUEEZY_TIMEOUT,
            transport=transport,
        ) as client:
            response = await client.post("/checkouts", json=payload, headers=headers)
    except httpx.HTTPError as e:
        logger.error("checkout.lemonsqueezy_unreachable", error=str(e))
        raise UpstreamError("Unable to reach Lemon Squeezy.")

    if response.status_code >= 400:
        logger.error(
            "checkout.lemonsqueezy_error",
            status=response.status_code,
            body=response.text[:500],
        )
        raise UpstreamError(f"Lemon Squeezy checkout failed ({response.status_code}).")

    try:
        url = response.json()["data"]["attributes"]["url"]
    except (ValueError, KeyError, TypeError):
        url = None
    if not url:
        raise UpstreamError("Lemon Squeezy did not return a checkout URL.")
    return url


# =============================================================================
# Stripe
# =============================================================================


async def create_stripe_checkout(
    account: Account,
    analysis_id: str,
    settings: Settings,
    success_url: str,
) -> str:
    """Create a Stripe Checkout session (mode=payment) and return its URL."""
    _require(settings, "stripe_api_key", "stripe_report_price_id")

    metadata = {"email": account.email, "user_id": account.id, "analysis_id": analysis_id}
    try:
        # The SDK is synchronous
        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            api_key=settings.stripe_api_key,
            mode="payment",
            line_items=[{"price": settings.stripe_report_price_id, "quantity": 1}],
            customer_email=account.email,
            success_url=success_url,
            cancel_url=settings.stripe_cancel_url or success_url,
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        )
    except stripe.StripeError as e:
        logger.error("checkout.stripe_error", error=str(e))
        raise UpstreamError("Stripe checkout failed.")

    if not session.url:
        raise UpstreamError("Stripe did not return a checkout URL.")
    return session.url


async def create_checkout(
    provider: Optional[str],
    account: Account,
    analysis_id: str,
    settings: Settings,
    success_url: str,
) -> str:
    provider = provider or settings.checkout_provider
    if provider not in CHECKOUT_PROVIDERS:
        raise InvalidInputError(f"Unsupported checkout provider: {provider}")
    if provider == STRIPE:
        return await create_stripe_checkout(account, analysis_id, settings, success_url)
    return await create_lemonsqueezy_checkout(account, analysis_id, settings, success_url)
