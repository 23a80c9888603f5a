"""
Affiliate coupon lifecycle: creation (remote Stripe coupon + local mirror),
activation toggling and eligibility filtering.

Activation is enforced locally when a checkout link is built; toggling never
touches the Stripe coupon.
"""
import logging
import re
import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

import stripe
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from calcula.core.errors import NotFoundError, RemoteServiceError, ValidationError
from calcula.db.base import utcnow
from calcula.models.affiliate import Affiliate
from calcula.models.affiliate_coupon import AffiliateCoupon
from calcula.models.affiliate_coupon_redemption import AffiliateCouponRedemption
from calcula.services import stripe_gateway
from calcula.services.stripe_gateway import field, to_timestamp
from calcula.utils.formatters import format_valor

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = ("percentage", "fixed")
MAX_PERCENT_OFF = Decimal("100")
COUPON_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _as_decimal(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("discountValue deve ser numérico")


def validate_coupon_params(
    affiliate_id: str,
    name: str,
    discount_type: str,
    discount_value,
    max_redemptions: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Decimal:
    """Local checks that run before any Stripe call. Returns the normalized value."""
    if not affiliate_id or not name or not discount_type or discount_value in (None, ""):
        raise ValidationError("Campos obrigatórios: affiliateId, name, discountType, discountValue")

    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discountType inválido: {discount_type}. Use 'percentage' ou 'fixed'")

    value = _as_decimal(discount_value)
    if discount_type == "percentage" and not (0 < value <= MAX_PERCENT_OFF):
        raise ValidationError("Desconto percentual deve estar entre 0% e 100%")
    if discount_type == "fixed" and value <= 0:
        raise ValidationError("Desconto fixo deve ser maior que zero")

    if max_redemptions is not None and max_redemptions < 1:
        raise ValidationError("maxRedemptions deve ser pelo menos 1")

    expires_at = _naive_utc(expires_at)
    if expires_at is not None and expires_at <= (now or utcnow()):
        raise ValidationError("expiresAt deve estar no futuro")

    return value


def generate_coupon_code(affiliate_name: str) -> str:
    prefix = re.sub(r"\s+", "", affiliate_name).upper()
    suffix = "".join(secrets.choice(COUPON_SUFFIX_ALPHABET) for _ in range(6))
    return f"{prefix}-{suffix}"


def create_coupon(
    db: Session,
    affiliate_id: str,
    name: str,
    discount_type: str,
    discount_value,
    max_redemptions: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    description: Optional[str] = None,
) -> AffiliateCoupon:
    value = validate_coupon_params(affiliate_id, name, discount_type, discount_value, max_redemptions, expires_at)
    expires_at = _naive_utc(expires_at)

    affiliate = db.query(Affiliate).filter(Affiliate.id == affiliate_id).first()
    if not affiliate:
        raise NotFoundError("Afiliado não encontrado")

    coupon_code = generate_coupon_code(affiliate.name)
    params = {
        "id": coupon_code,
        "name": f"{name} - {affiliate.name}",
        "duration": "once" if expires_at else "forever",
    }
    if discount_type == "percentage":
        params["percent_off"] = float(value)
    else:
        params["amount_off"] = int((value * 100).to_integral_value())  # cents
        params["currency"] = "brl"
    if max_redemptions:
        params["max_redemptions"] = max_redemptions
    if expires_at:
        params["redeem_by"] = to_timestamp(expires_at)

    logger.info("[CREATE-AFFILIATE-COUPON] Creating Stripe coupon %s", coupon_code)
    try:
        remote = stripe_gateway.create_coupon(**params)
    except stripe.InvalidRequestError as e:
        # Parameter rejections go back to the caller verbatim
        raise ValidationError(getattr(e, "user_message", None) or str(e)) from e
    except stripe.StripeError as e:
        logger.exception("[CREATE-AFFILIATE-COUPON] Stripe error creating %s", coupon_code)
        raise RemoteServiceError(f"Stripe coupon creation failed: {e}") from e

    stripe_coupon_id = field(remote, "id", coupon_code)

    coupon = AffiliateCoupon(
        affiliate_id=affiliate.id,
        stripe_coupon_id=stripe_coupon_id,
        name=name,
        description=description,
        discount_type=discount_type,
        discount_value=value,
        max_redemptions=max_redemptions,
        times_redeemed=0,
        is_active=True,
        expires_at=expires_at,
    )
    try:
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[CREATE-AFFILIATE-COUPON] DB insert failed, removing Stripe coupon %s", stripe_coupon_id)
        try:
            stripe_gateway.delete_coupon(stripe_coupon_id)
        except stripe.StripeError:
            logger.exception("[CREATE-AFFILIATE-COUPON] Could not delete orphan Stripe coupon %s", stripe_coupon_id)
        raise RemoteServiceError(f"Erro ao salvar cupom no banco de dados: {e}") from e

    logger.info("[CREATE-AFFILIATE-COUPON] Coupon %s created for affiliate %s", coupon.id, affiliate.id)
    return coupon


def toggle_coupon_status(db: Session, coupon_id: str, current_status: bool) -> AffiliateCoupon:
    coupon = db.query(AffiliateCoupon).filter(AffiliateCoupon.id == coupon_id).first()
    if not coupon:
        raise NotFoundError("Cupom não encontrado")

    coupon.is_active = not current_status
    db.commit()
    db.refresh(coupon)
    logger.info("Coupon %s %s", coupon.id, "activated" if coupon.is_active else "deactivated")
    return coupon


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return False
    return _naive_utc(expires_at) <= (now or utcnow())


def is_coupon_eligible(coupon: AffiliateCoupon, now: Optional[datetime] = None) -> bool:
    if not coupon.is_active:
        return False
    if is_expired(coupon.expires_at, now):
        return False
    if coupon.max_redemptions is not None and (coupon.times_redeemed or 0) >= coupon.max_redemptions:
        return False
    return True


def get_active_coupons_for_affiliate(
    coupons: Iterable[AffiliateCoupon],
    affiliate_id: str,
    now: Optional[datetime] = None,
) -> list[AffiliateCoupon]:
    """Pure filter over already-loaded coupons; no I/O."""
    now = now or utcnow()
    return [c for c in coupons if c.affiliate_id == affiliate_id and is_coupon_eligible(c, now)]


def load_coupons(db: Session, affiliate_id: Optional[str] = None) -> list[AffiliateCoupon]:
    query = db.query(AffiliateCoupon)
    if affiliate_id:
        query = query.filter(AffiliateCoupon.affiliate_id == affiliate_id)
    return query.order_by(AffiliateCoupon.created_at.desc()).all()


def format_discount_value(discount_type: str, value) -> str:
    if discount_type == "percentage":
        return f"{Decimal(str(value)).normalize():f}% OFF"
    return f"{format_valor(value)} OFF"


def record_redemption(db: Session, stripe_coupon_id: str, stripe_session_id: str) -> Optional[AffiliateCoupon]:
    """
    Bump times_redeemed after a paid checkout used the coupon. Webhook path only.
    Counted once per checkout session, however many times the event is delivered.
    """
    coupon = db.query(AffiliateCoupon).filter(AffiliateCoupon.stripe_coupon_id == stripe_coupon_id).first()
    if not coupon:
        logger.info("[STRIPE-WEBHOOK] Coupon %s is not an affiliate coupon", stripe_coupon_id)
        return None

    already_counted = db.query(AffiliateCouponRedemption.id).filter(
        AffiliateCouponRedemption.coupon_id == coupon.id,
        AffiliateCouponRedemption.stripe_session_id == stripe_session_id,
    ).first()
    if already_counted:
        logger.info("[STRIPE-WEBHOOK] Redemption of %s by session %s already counted", stripe_coupon_id, stripe_session_id)
        return coupon

    db.add(AffiliateCouponRedemption(coupon_id=coupon.id, stripe_session_id=stripe_session_id))
    coupon.times_redeemed = (coupon.times_redeemed or 0) + 1
    try:
        db.commit()
    except IntegrityError:
        # A concurrent delivery of the same event counted it first
        db.rollback()
        logger.info("[STRIPE-WEBHOOK] Redemption of %s by session %s already counted", stripe_coupon_id, stripe_session_id)
    db.refresh(coupon)
    return coupon
