"""
Affiliate-aware Stripe checkout.

Attribution: an explicit affiliate code wins; otherwise the aff_code cookie
set by the /r/{code} redirect is used.
"""
import logging
from typing import Optional

import stripe
from sqlalchemy.orm import Session

from calcula.core.config import AFFILIATE_COOKIE_MAX_AGE_DAYS, AFFILIATE_COOKIE_NAME
from calcula.core.errors import RemoteServiceError, ValidationError
from calcula.core.plan_limits import BILLING_CYCLES
from calcula.db.base import utcnow
from calcula.models.affiliate_coupon import AffiliateCoupon
from calcula.models.affiliate_link import AffiliateLink
from calcula.services import stripe_gateway
from calcula.services.affiliate_coupons import get_active_coupons_for_affiliate
from calcula.services.stripe_gateway import field

logger = logging.getLogger(__name__)

TAG = "[AFFILIATE-CHECKOUT]"

COOKIE_MAX_AGE_SECONDS = AFFILIATE_COOKIE_MAX_AGE_DAYS * 24 * 60 * 60

# Default prices when the affiliate has no dedicated product
FALLBACK_PLAN_PRICES = {
    "professional_monthly": "price_1SAL2dBnxFLGYBYfkowqS28X",  # R$ 49,90
    "professional_yearly": "price_1SAGl3BnxFLGYBYfNdoF5crq",  # R$ 478,80
    "enterprise_monthly": "price_1SAGgdBnxFLGYBYfOzJwhMw3",  # R$ 89,90
    "enterprise_yearly": "price_1SAGlUBnxFLGYBYfwLnEZoId",  # R$ 838,80
}


def resolve_affiliate_code(explicit_code: Optional[str], cookie_code: Optional[str]) -> Optional[str]:
    return (explicit_code or "").strip() or (cookie_code or "").strip() or None


def _affiliate_price(link: AffiliateLink, plan_type: str, billing: str) -> Optional[str]:
    for product in link.affiliate.stripe_products or []:
        if product.plan_type == plan_type and product.billing == billing and product.is_active:
            return product.stripe_price_id
    return None


def _remote_coupon_valid(stripe_coupon_id: str) -> bool:
    try:
        remote = stripe_gateway.retrieve_coupon(stripe_coupon_id)
    except stripe.StripeError as e:
        logger.warning("%s Error validating coupon %s in Stripe: %s", TAG, stripe_coupon_id, e)
        return False
    return bool(field(remote, "valid", False))


def pick_discount(db: Session, affiliate_id: str) -> Optional[str]:
    """First locally eligible coupon that Stripe still reports as valid."""
    coupons = (
        db.query(AffiliateCoupon)
        .filter(AffiliateCoupon.affiliate_id == affiliate_id, AffiliateCoupon.is_active.is_(True))
        .order_by(AffiliateCoupon.created_at.asc())
        .all()
    )
    for coupon in get_active_coupons_for_affiliate(coupons, affiliate_id, utcnow()):
        if _remote_coupon_valid(coupon.stripe_coupon_id):
            logger.info("%s Coupon %s will be applied", TAG, coupon.stripe_coupon_id)
            return coupon.stripe_coupon_id
        logger.info("%s Coupon %s invalid in Stripe", TAG, coupon.stripe_coupon_id)
    return None


def create_affiliate_checkout(
    db: Session,
    plan_type: str,
    billing: str,
    origin: str,
    affiliate_code: Optional[str] = None,
    cookie_code: Optional[str] = None,
    direct: bool = False,
    customer_email: Optional[str] = None,
) -> dict:
    plan_key = f"{plan_type}_{billing}"
    if plan_key not in FALLBACK_PLAN_PRICES or billing not in BILLING_CYCLES:
        raise ValidationError(f"Plano inválido: {plan_key}")

    effective_code = resolve_affiliate_code(affiliate_code, cookie_code)
    price_id = None
    affiliate_id = None

    if effective_code:
        link = db.query(AffiliateLink).filter(AffiliateLink.link_code == effective_code).first()
        if link and link.affiliate:
            affiliate_id = link.affiliate.id
            price_id = _affiliate_price(link, plan_type, billing)
            link.clicks_count = (link.clicks_count or 0) + 1
            db.commit()
            logger.info("%s Affiliate %s found, click count updated", TAG, affiliate_id)
        else:
            logger.info("%s Affiliate not found for code %s", TAG, effective_code)

    if not price_id:
        price_id = FALLBACK_PLAN_PRICES[plan_key]
        logger.info("%s Using fallback price %s", TAG, price_id)

    params = {
        "line_items": [{"price": price_id, "quantity": 1}],
        "mode": "subscription",
        "success_url": f"{origin}/auth/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{origin}/planos",
        "metadata": {
            "affiliate_code": effective_code or "",
            "affiliate_id": affiliate_id or "",
            "plan_type": plan_type,
            "billing": billing,
            "is_affiliate_sale": "true" if effective_code else "false",
        },
    }

    try:
        if customer_email and not direct:
            customer_id = stripe_gateway.find_customer_id_by_email(customer_email)
            if customer_id:
                params["customer"] = customer_id
            else:
                params["customer_email"] = customer_email

        if affiliate_id:
            coupon_id = pick_discount(db, affiliate_id)
            if coupon_id:
                params["discounts"] = [{"coupon": coupon_id}]

        session = stripe_gateway.create_checkout_session(**params)
    except stripe.StripeError as e:
        logger.exception("%s Stripe session creation failed", TAG)
        raise RemoteServiceError(f"Stripe checkout failed: {e}") from e

    logger.info("%s Checkout session %s created", TAG, field(session, "id"))
    return {"url": field(session, "url")}
