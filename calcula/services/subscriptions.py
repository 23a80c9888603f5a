"""
Subscription state driven by Stripe webhooks, plus the admin plan override.

The profile's plan is only changed here: by a verified webhook event or by an
admin through admin_update_user_plan.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from calcula.core.errors import NotFoundError, ValidationError
from calcula.core.plan_limits import BILLING_CYCLES, PLAN_TYPES, normalize_plan
from calcula.models.invoice import Invoice
from calcula.models.profile import Profile
from calcula.models.subscription import Subscription
from calcula.services import stripe_gateway
from calcula.services.activity_log import ActivityLogger
from calcula.services.affiliate_coupons import record_redemption
from calcula.services.stripe_gateway import field

logger = logging.getLogger(__name__)

TAG = "[STRIPE-WEBHOOK]"


def _object_id(value) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return field(value, "id")


def extract_plan_from_metadata(metadata) -> str:
    plan = field(metadata, "plan_type") or field(metadata, "plan") or "professional"
    return normalize_plan(str(plan))


def _period_end(subscription) -> Optional[datetime]:
    end = field(subscription, "current_period_end")
    if not end:
        # Newer API versions carry the period on the subscription items
        items = field(field(subscription, "items"), "data") or []
        end = field(items[0], "current_period_end") if items else None
    return stripe_gateway.from_timestamp(end)


def _find_profile(db: Session, user_id: Optional[str], email: Optional[str]) -> Optional[Profile]:
    if user_id:
        profile = db.query(Profile).filter(Profile.user_id == user_id).first()
        if profile:
            return profile
    if email:
        return db.query(Profile).filter(Profile.email.ilike(email)).first()
    return None


def handle_checkout_completed(db: Session, session) -> Optional[Subscription]:
    subscription_id = _object_id(field(session, "subscription"))
    if not subscription_id:
        logger.info("%s Checkout session %s without subscription", TAG, field(session, "id"))
        return None

    metadata = field(session, "metadata")
    plan = extract_plan_from_metadata(metadata)
    billing = field(metadata, "billing") or "monthly"
    email = field(field(session, "customer_details"), "email") or field(session, "customer_email")

    remote = stripe_gateway.retrieve_subscription(subscription_id)
    profile = _find_profile(db, field(metadata, "user_id"), email)

    subscription = db.query(Subscription).filter(
        Subscription.stripe_subscription_id == subscription_id
    ).first()
    if not subscription:
        subscription = Subscription(stripe_subscription_id=subscription_id)
        db.add(subscription)

    subscription.user_id = profile.user_id if profile else subscription.user_id
    subscription.customer_email = email
    subscription.stripe_customer_id = _object_id(field(session, "customer"))
    subscription.plan = plan
    subscription.billing_interval = billing if billing in BILLING_CYCLES else "monthly"
    subscription.status = field(remote, "status") or "active"
    subscription.current_period_end = _period_end(remote)

    if profile and subscription.status in ("active", "trialing"):
        profile.plan = plan
        profile.billing = subscription.billing_interval
        profile.plan_expires_at = None
        logger.info("%s Profile %s moved to %s", TAG, profile.user_id, plan)
    elif not profile:
        logger.info("%s No profile yet for %s, subscription stored unlinked", TAG, email)

    db.commit()

    for discount in field(session, "discounts") or []:
        coupon_id = _object_id(field(discount, "coupon"))
        if coupon_id:
            record_redemption(db, coupon_id, field(session, "id"))

    return subscription


def handle_invoice_paid(db: Session, invoice) -> Optional[Subscription]:
    subscription_id = _object_id(field(invoice, "subscription"))
    if not subscription_id:
        logger.info("%s Invoice %s without subscription", TAG, field(invoice, "id"))
        return None

    subscription = db.query(Subscription).filter(
        Subscription.stripe_subscription_id == subscription_id
    ).first()
    if not subscription:
        logger.info("%s Subscription %s not found while marking invoice %s", TAG, subscription_id, field(invoice, "id"))
        return None

    lines = field(field(invoice, "lines"), "data") or []
    period = field(lines[0], "period") if lines else None
    period_start = stripe_gateway.from_timestamp(field(period, "start") or field(invoice, "period_start"))
    period_end = stripe_gateway.from_timestamp(field(period, "end") or field(invoice, "period_end"))

    subscription.status = "active"
    if period_end:
        subscription.current_period_end = period_end

    amount_cents = field(invoice, "amount_paid")
    if amount_cents is None:
        amount_cents = field(invoice, "amount_due") or 0

    invoice_id = field(invoice, "id")
    row = db.query(Invoice).filter(Invoice.stripe_invoice_id == invoice_id).first()
    if not row:
        row = Invoice(subscription_id=subscription.id, stripe_invoice_id=invoice_id)
        db.add(row)
    row.amount = Decimal(amount_cents) / 100
    row.currency = field(invoice, "currency") or "brl"
    row.period_start = period_start
    row.period_end = period_end

    db.commit()
    return subscription


def handle_subscription_deleted(db: Session, remote) -> Optional[Subscription]:
    subscription = db.query(Subscription).filter(
        Subscription.stripe_subscription_id == field(remote, "id")
    ).first()
    if not subscription:
        return None

    subscription.status = "canceled"
    if subscription.user_id:
        profile = db.query(Profile).filter(Profile.user_id == subscription.user_id).first()
        if profile:
            profile.plan = "free"
    db.commit()
    return subscription


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "invoice.payment_succeeded": handle_invoice_paid,
    "customer.subscription.deleted": handle_subscription_deleted,
}


def process_event(db: Session, event) -> bool:
    """Dispatch a verified event. Returns False for event types we ignore."""
    event_type = field(event, "type")
    handler = EVENT_HANDLERS.get(event_type)
    if not handler:
        logger.info("%s Unhandled event %s", TAG, event_type)
        return False
    handler(db, field(field(event, "data"), "object"))
    logger.info("%s Processed %s", TAG, event_type)
    return True


def admin_update_user_plan(
    db: Session,
    activity: ActivityLogger,
    user_id: str,
    new_plan: str,
    expires_at: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> dict:
    if not user_id or not new_plan:
        raise ValidationError("Missing required fields: userId and newPlan")
    if new_plan not in PLAN_TYPES:
        raise ValidationError(f"Plano inválido: {new_plan}")

    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if not profile:
        raise NotFoundError("Perfil não encontrado")

    old_plan = profile.plan
    profile.plan = new_plan
    profile.plan_expires_at = expires_at
    db.commit()
    logger.info("[ADMIN-UPDATE-PLAN] User %s: %s -> %s", user_id, old_plan, new_plan)

    activity.log(
        "update_user_plan",
        table_name="profiles",
        record_id=profile.id,
        description=reason or "Alteração manual do plano",
        value=f"{old_plan} -> {new_plan}",
    )

    active = db.query(Subscription).filter(
        Subscription.user_id == user_id, Subscription.status == "active"
    ).first()
    stripe_warning = None
    if active:
        stripe_warning = {
            "hasActiveSubscription": True,
            "subscriptionId": active.stripe_subscription_id,
            "message": "Usuário possui assinatura ativa no Stripe. Considere cancelar a assinatura no Stripe.",
        }

    return {
        "success": True,
        "message": "Plano atualizado com sucesso",
        "stripeWarning": stripe_warning,
        "oldPlan": old_plan,
        "newPlan": new_plan,
        "expiresAt": expires_at.isoformat() if expires_at else None,
    }
