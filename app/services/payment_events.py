"""
Payment provider adapters.

Each adapter verifies a provider's webhook signature over the raw body and
translates the provider's payload into one PaymentEvent. The reconciler only
ever sees PaymentEvent, so provider payload changes stay in this module.

Supported providers:
- Lemon Squeezy: hex HMAC-SHA256 of the raw body in X-Signature
- Paddle Billing: Paddle-Signature "ts=<unix>;h1=<hex>" over "<ts>:<body>"
- Stripe: Stripe-Signature, verified by the Stripe SDK
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import orjson
import stripe

from app.core.auth import normalize_email
from app.core.config import Settings
from app.core.signatures import verify_hmac_sha256, verify_paddle_signature
from app.services.errors import ConfigurationError, InvalidInputError, ServiceError

LEMONSQUEEZY = "lemonsqueezy"
PADDLE = "paddle"
STRIPE = "stripe"

# Normalized event kinds
ORDER_CREATED = "order_created"
ORDER_REFUNDED = "order_refunded"
SUBSCRIPTION_CREATED = "subscription_created"
SUBSCRIPTION_UPDATED = "subscription_updated"
SUBSCRIPTION_CANCELLED = "subscription_cancelled"
SUBSCRIPTION_EXPIRED = "subscription_expired"

EVENT_KINDS = frozenset({
    ORDER_CREATED,
    ORDER_REFUNDED,
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_UPDATED,
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_EXPIRED,
})

TERMINAL_KINDS = frozenset({ORDER_REFUNDED, SUBSCRIPTION_CANCELLED, SUBSCRIPTION_EXPIRED})

LEMONSQUEEZY_STATUSES = {
    "active": "active",
    "on_trial": "trialing",
    "past_due": "past_due",
    "unpaid": "past_due",
    "cancelled": "cancelled",
    "expired": "cancelled",
}

PADDLE_STATUSES = {
    "active": "active",
    "trialing": "trialing",
    "past_due": "past_due",
    "canceled": "cancelled",
    "cancelled": "cancelled",
    "paused": "cancelled",
}

STRIPE_STATUSES = {
    "active": "active",
    "trialing": "trialing",
    "past_due": "past_due",
    "unpaid": "past_due",
    "canceled": "cancelled",
    "incomplete_expired": "cancelled",
    "paused": "cancelled",
}


class WebhookSignatureError(ServiceError):
    """Signature missing or wrong. Nothing may be written."""
    status_code = 401


@dataclass
class PaymentEvent:
    """A provider webhook, normalized."""
    provider: str
    name: str  # provider's own event name
    kind: Optional[str] = None  # one of EVENT_KINDS, None when not handled
    status: Optional[str] = None  # internal status, None when unmappable
    provider_status: Optional[str] = None
    email: Optional[str] = None
    order_id: Optional[str] = None
    order_identifier: Optional[str] = None
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    user_id: Optional[str] = None
    analysis_id: Optional[str] = None

    @property
    def handled(self) -> bool:
        return self.kind in EVENT_KINDS and self.status is not None

    @property
    def payment_id(self) -> Optional[str]:
        return self.order_id or self.order_identifier


def status_for(kind: Optional[str], provider_status: Optional[str], statuses: dict) -> Optional[str]:
    """Internal status a normalized event maps to."""
    if kind == ORDER_CREATED:
        return "active"
    if kind in TERMINAL_KINDS:
        return "cancelled"
    if kind in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
        return statuses.get(provider_status or "")
    return None


# =============================================================================
# Payload helpers
# =============================================================================


def _load_json(raw_body: bytes) -> dict:
    try:
        payload = orjson.loads(raw_body)
    except orjson.JSONDecodeError:
        raise InvalidInputError("Invalid JSON payload.")
    if not isinstance(payload, dict):
        raise InvalidInputError("Invalid JSON payload.")
    return payload


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _str(value: Any) -> Optional[str]:
    """Provider ids arrive as strings or numbers."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _text(value: Any) -> Optional[str]:
    """Custom-data fields are only trusted when they are strings."""
    return value.strip() or None if isinstance(value, str) else None


def _datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


# =============================================================================
# Lemon Squeezy
# =============================================================================


def parse_lemonsqueezy_event(
    raw_body: bytes, signature: Optional[str], settings: Settings
) -> PaymentEvent:
    secret = settings.lemonsqueezy_webhook_secret
    if not secret:
        raise ConfigurationError("LEMONSQUEEZY_WEBHOOK_SECRET is not configured.")
    if not signature:
        raise WebhookSignatureError("Missing x-signature header.")
    if not verify_hmac_sha256(raw_body, signature, secret):
        raise WebhookSignatureError("Invalid webhook signature.")

    payload = _load_json(raw_body)
    meta = _dict(payload.get("meta"))
    data = _dict(payload.get("data"))
    attributes = _dict(data.get("attributes"))
    custom = _dict(meta.get("custom_data"))

    name = _text(meta.get("event_name"))
    if not name:
        raise InvalidInputError("Missing event name.")

    kind = name if name in EVENT_KINDS else None
    entity_id = _str(data.get("id"))
    is_subscription = name.startswith("subscription_")
    provider_status = _text(attributes.get("status"))

    return PaymentEvent(
        provider=LEMONSQUEEZY,
        name=name,
        kind=kind,
        status=status_for(kind, provider_status, LEMONSQUEEZY_STATUSES),
        provider_status=provider_status,
        email=normalize_email(attributes.get("user_email")) or normalize_email(custom.get("email")),
        order_id=None if is_subscription else entity_id,
        order_identifier=_str(attributes.get("identifier")),
        subscription_id=entity_id if is_subscription else None,
        customer_id=_str(attributes.get("customer_id")),
        current_period_end=_datetime(attributes.get("renews_at") or attributes.get("ends_at")),
        user_id=_text(custom.get("user_id")),
        analysis_id=_text(custom.get("analysis_id")),
    )


# =============================================================================
# Paddle Billing
# =============================================================================

PADDLE_EVENT_KINDS = {
    "transaction.completed": ORDER_CREATED,
    "subscription.created": SUBSCRIPTION_UPDATED,
    "subscription.activated": SUBSCRIPTION_UPDATED,
    "subscription.updated": SUBSCRIPTION_UPDATED,
    "subscription.past_due": SUBSCRIPTION_UPDATED,
    "subscription.canceled": SUBSCRIPTION_CANCELLED,
}


def parse_paddle_event(
    raw_body: bytes, signature: Optional[str], settings: Settings, now: Optional[float] = None
) -> PaymentEvent:
    secret = settings.paddle_webhook_secret
    if not secret:
        raise ConfigurationError("PADDLE_WEBHOOK_SECRET is not configured.")
    if not signature:
        raise WebhookSignatureError("Missing paddle-signature header.")
    if not verify_paddle_signature(
        raw_body,
        signature,
        secret,
        tolerance_seconds=settings.paddle_signature_tolerance_seconds,
        now=now,
    ):
        raise WebhookSignatureError("Invalid webhook signature.")

    payload = _load_json(raw_body)
    data = _dict(payload.get("data"))
    custom = _dict(data.get("custom_data"))

    name = _text(payload.get("event_type"))
    if not name:
        raise InvalidInputError("Missing event name.")

    kind = PADDLE_EVENT_KINDS.get(name)
    if name == "adjustment.created" and data.get("action") == "refund":
        kind = ORDER_REFUNDED

    provider_status = _text(data.get("status"))
    event = PaymentEvent(
        provider=PADDLE,
        name=name,
        kind=kind,
        status=status_for(kind, provider_status, PADDLE_STATUSES),
        provider_status=provider_status,
        email=normalize_email(custom.get("email")),
        customer_id=_str(data.get("customer_id")),
        user_id=_text(custom.get("user_id")),
        analysis_id=_text(custom.get("analysis_id")),
    )

    if kind == ORDER_CREATED:
        event.order_id = _str(data.get("id"))
        event.subscription_id = _str(data.get("subscription_id"))
    elif kind == ORDER_REFUNDED:
        event.order_id = _str(data.get("transaction_id"))
        event.subscription_id = _str(data.get("subscription_id"))
    else:
        event.subscription_id = _str(data.get("id"))
        event.current_period_end = _datetime(
            _dict(data.get("current_billing_period")).get("ends_at")
        )
    return event


# =============================================================================
# Stripe
# =============================================================================

STRIPE_EVENT_KINDS = {
    "checkout.session.completed": ORDER_CREATED,
    "customer.subscription.created": SUBSCRIPTION_CREATED,
    "customer.subscription.updated": SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": SUBSCRIPTION_CANCELLED,
    "charge.refunded": ORDER_REFUNDED,
}


def _stripe_period_end(subscription: dict) -> Optional[datetime]:
    # Newer API versions moved the period onto subscription items
    if subscription.get("current_period_end"):
        return _datetime(subscription["current_period_end"])
    items = _dict(subscription.get("items")).get("data") or []
    if items and isinstance(items[0], dict):
        return _datetime(items[0].get("current_period_end"))
    return None


def parse_stripe_event(
    raw_body: bytes, signature: Optional[str], settings: Settings
) -> PaymentEvent:
    secret = settings.stripe_webhook_secret
    if not secret:
        raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured.")
    if not signature:
        raise WebhookSignatureError("Missing stripe-signature header.")
    try:
        stripe.Webhook.construct_event(raw_body, signature, secret)
    except stripe.SignatureVerificationError:
        raise WebhookSignatureError("Invalid webhook signature.")
    except ValueError:
        raise InvalidInputError("Invalid JSON payload.")

    # Work from plain dicts once the SDK has verified the body
    payload = _load_json(raw_body)
    obj = _dict(_dict(payload.get("data")).get("object"))
    metadata = _dict(obj.get("metadata"))

    name = _text(payload.get("type"))
    if not name:
        raise InvalidInputError("Missing event name.")

    kind = STRIPE_EVENT_KINDS.get(name)
    if kind == ORDER_CREATED and obj.get("mode") != "payment":
        kind = None

    provider_status = _text(obj.get("status")) if name.startswith("customer.subscription.") else None
    event = PaymentEvent(
        provider=STRIPE,
        name=name,
        kind=kind,
        status=status_for(kind, provider_status, STRIPE_STATUSES),
        provider_status=provider_status,
        email=normalize_email(metadata.get("email")),
        customer_id=_str(obj.get("customer")),
        user_id=_text(metadata.get("user_id")),
        analysis_id=_text(metadata.get("analysis_id")),
    )

    if name == "checkout.session.completed":
        details = _dict(obj.get("customer_details"))
        event.email = (
            normalize_email(details.get("email"))
            or normalize_email(obj.get("customer_email"))
            or event.email
        )
        event.order_id = _str(obj.get("payment_intent"))
        event.order_identifier = _str(obj.get("id"))
    elif name == "charge.refunded":
        billing = _dict(obj.get("billing_details"))
        event.email = (
            event.email
            or normalize_email(billing.get("email"))
            or normalize_email(obj.get("receipt_email"))
        )
        event.order_id = _str(obj.get("payment_intent"))
    elif name.startswith("customer.subscription."):
        event.subscription_id = _str(obj.get("id"))
        event.current_period_end = _stripe_period_end(obj)
    return event


ADAPTERS = {
    LEMONSQUEEZY: (parse_lemonsqueezy_event, "x-signature"),
    PADDLE: (parse_paddle_event, "paddle-signature"),
    STRIPE: (parse_stripe_event, "stripe-signature"),
}
