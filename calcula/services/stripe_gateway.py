"""
Thin wrapper over the Stripe SDK.

Every Stripe call the services make goes through here so there is a single
place that sets the API key and a single seam to patch in tests.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe

from calcula.core.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from calcula.core.errors import RemoteServiceError

logger = logging.getLogger(__name__)

stripe.api_key = STRIPE_SECRET_KEY


def field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _ensure_configured() -> None:
    if not stripe.api_key:
        raise RemoteServiceError("STRIPE_SECRET_KEY not configured")


def to_timestamp(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


# --- Checkout sessions -----------------------------------------------------

def list_completed_sessions(created_since: datetime, limit: int = 100) -> list:
    _ensure_configured()
    result = stripe.checkout.Session.list(
        created={"gte": to_timestamp(created_since)},
        status="complete",
        limit=limit,
    )
    return list(field(result, "data", []) or [])


def list_line_items(session_id: str) -> list:
    _ensure_configured()
    result = stripe.checkout.Session.list_line_items(session_id, limit=1)
    return list(field(result, "data", []) or [])


def create_checkout_session(**params):
    _ensure_configured()
    return stripe.checkout.Session.create(**params)


def find_customer_id_by_email(email: str) -> Optional[str]:
    _ensure_configured()
    customers = stripe.Customer.list(email=email, limit=1)
    data = field(customers, "data", []) or []
    return field(data[0], "id") if data else None


# --- Coupons ---------------------------------------------------------------

def create_coupon(**params):
    _ensure_configured()
    return stripe.Coupon.create(**params)


def delete_coupon(coupon_id: str) -> None:
    _ensure_configured()
    stripe.Coupon.delete(coupon_id)


def retrieve_coupon(coupon_id: str):
    _ensure_configured()
    return stripe.Coupon.retrieve(coupon_id)


# --- Products / prices -----------------------------------------------------

def create_product(**params):
    _ensure_configured()
    return stripe.Product.create(**params)


def create_price(**params):
    _ensure_configured()
    return stripe.Price.create(**params)


def archive_product(product_id: str) -> None:
    """Products with prices cannot be deleted in Stripe; archiving hides them."""
    _ensure_configured()
    stripe.Product.modify(product_id, active=False)


def deactivate_price(price_id: str) -> None:
    _ensure_configured()
    stripe.Price.modify(price_id, active=False)


# --- Subscriptions / webhooks ---------------------------------------------

def retrieve_subscription(subscription_id: str):
    _ensure_configured()
    return stripe.Subscription.retrieve(subscription_id)


def construct_webhook_event(payload: bytes, signature: str):
    """Raises stripe.SignatureVerificationError / ValueError on a bad payload."""
    if not STRIPE_WEBHOOK_SECRET:
        logger.warning("[STRIPE-WEBHOOK] STRIPE_WEBHOOK_SECRET not configured")
    return stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
