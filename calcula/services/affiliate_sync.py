"""
Affiliate sale reconciliation.

Scans recent completed Stripe checkout sessions and backfills the affiliate
sale + commission for every attributed session that has no sale yet. Safe to
rerun over overlapping windows: a session maps to at most one sale, enforced
by the uq_affiliate_sales_stripe_session_id constraint.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from calcula.core.config import AFFILIATE_SYNC_LIMIT, AFFILIATE_SYNC_WINDOW_DAYS
from calcula.core.errors import RemoteServiceError
from calcula.db.base import utcnow
from calcula.models.affiliate_commission import AffiliateCommission
from calcula.models.affiliate_link import AffiliateLink
from calcula.models.affiliate_sale import AffiliateSale
from calcula.services import stripe_gateway
from calcula.services.stripe_gateway import field

logger = logging.getLogger(__name__)

TAG = "[SYNC-AFFILIATE-SALES]"

# Stripe product id -> plan tier. Unknown products count as professional.
PRODUCT_TO_PLAN = {
    "prod_T6TXCmpEQTIaRT": "professional",
    "prod_T6TeSPeBygwJz7": "professional",
    "prod_T6TiY7VskZgNKg": "professional",
    "prod_T6TYlKJ4hdq6m1": "enterprise",
    "prod_T6TdpmHjPubwhM": "enterprise",
    "prod_T6Te4Zsr3iA7x5": "enterprise",
    "prod_T6TiS2ZoP1MhUL": "enterprise",
}
DEFAULT_PLAN = "professional"

CENTS = Decimal("0.01")


@dataclass
class ReconciliationSummary:
    total_sessions: int = 0
    synced_sales: int = 0
    errors: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "success": True,
            "syncedSales": self.synced_sales,
            "errors": self.errors,
            "totalSessions": self.total_sessions,
        }


def compute_commission(affiliate, sale_amount: Decimal) -> Decimal:
    if affiliate.commission_type == "percentage":
        pct = Decimal(str(affiliate.commission_percentage or 0))
        return (pct * sale_amount / 100).quantize(CENTS, rounding=ROUND_HALF_UP)
    return Decimal(str(affiliate.commission_fixed_amount or 0)).quantize(CENTS, rounding=ROUND_HALF_UP)


def plan_for_session(session_id: str) -> Optional[str]:
    """
    Plan tier from the session's first line item product. None when the
    session has no line item or the item carries no product; such sessions
    are not booked as sales.
    """
    items = stripe_gateway.list_line_items(session_id)
    if not items:
        return None
    product = field(field(items[0], "price"), "product")
    if not product:
        return None
    product_id = product if isinstance(product, str) else field(product, "id")
    return PRODUCT_TO_PLAN.get(product_id, DEFAULT_PLAN)


def _sale_exists(db: Session, session_id: str) -> bool:
    return db.query(AffiliateSale.id).filter(AffiliateSale.stripe_session_id == session_id).first() is not None


def _record_sale(db: Session, session, link: AffiliateLink, plan_type: str) -> AffiliateSale:
    affiliate = link.affiliate
    session_id = field(session, "id")
    created = stripe_gateway.from_timestamp(field(session, "created")) or utcnow()
    details = field(session, "customer_details")

    sale_amount = (Decimal(field(session, "amount_total") or 0) / 100).quantize(CENTS)
    commission_amount = compute_commission(affiliate, sale_amount)

    payment_intent = field(session, "payment_intent")
    if payment_intent is not None and not isinstance(payment_intent, str):
        payment_intent = field(payment_intent, "id")

    sale = AffiliateSale(
        affiliate_id=affiliate.id,
        affiliate_link_id=link.id,
        customer_email=field(details, "email") or field(session, "customer_email") or "",
        customer_name=field(details, "name"),
        sale_amount=sale_amount,
        commission_amount=commission_amount,
        plan_type=plan_type,
        stripe_session_id=session_id,
        stripe_payment_intent_id=payment_intent,
        status="confirmed",
        sale_date=created,
        confirmed_at=created,
    )
    db.add(sale)
    db.flush()  # sale.id for the commission

    db.add(AffiliateCommission(
        affiliate_id=affiliate.id,
        sale_id=sale.id,
        amount=commission_amount,
        status="pending",
    ))

    link.conversions_count = (link.conversions_count or 0) + 1
    affiliate.total_sales = Decimal(str(affiliate.total_sales or 0)) + sale_amount
    affiliate.total_commissions = Decimal(str(affiliate.total_commissions or 0)) + commission_amount

    db.commit()
    return sale


def reconcile_affiliate_sales(
    db: Session,
    now: Optional[datetime] = None,
    window_days: int = AFFILIATE_SYNC_WINDOW_DAYS,
    limit: int = AFFILIATE_SYNC_LIMIT,
) -> ReconciliationSummary:
    now = now or utcnow()
    since = now - timedelta(days=window_days)
    logger.info("%s Listing completed sessions since %s (limit %s)", TAG, since.isoformat(), limit)

    try:
        sessions = stripe_gateway.list_completed_sessions(since, limit=limit)
    except stripe.StripeError as e:
        logger.exception("%s Could not list checkout sessions", TAG)
        raise RemoteServiceError(f"Stripe session listing failed: {e}") from e

    summary = ReconciliationSummary(total_sessions=len(sessions))
    logger.info("%s Found %s sessions", TAG, summary.total_sessions)

    for session in sessions:
        session_id = field(session, "id")
        affiliate_code = field(field(session, "metadata"), "affiliate_code")
        if not affiliate_code:
            continue

        try:
            if _sale_exists(db, session_id):
                continue

            link = db.query(AffiliateLink).filter(AffiliateLink.link_code == affiliate_code).first()
            if not link or not link.affiliate:
                logger.warning("%s No affiliate link for code %s (session %s)", TAG, affiliate_code, session_id)
                summary.skipped += 1
                continue

            plan_type = plan_for_session(session_id)
            if plan_type is None:
                logger.info("%s Session %s has no product line item, skipping", TAG, session_id)
                summary.skipped += 1
                continue

            sale = _record_sale(db, session, link, plan_type)
            summary.synced_sales += 1
            logger.info("%s Synced session %s -> sale %s", TAG, session_id, sale.id)
        except IntegrityError as e:
            db.rollback()
            if _sale_exists(db, session_id):
                # Another run inserted this session's sale first
                logger.info("%s Session %s already synced concurrently", TAG, session_id)
            else:
                summary.errors += 1
                logger.error("%s Integrity failure syncing session %s: %s", TAG, session_id, e)
        except Exception as e:
            db.rollback()
            summary.errors += 1
            logger.error("%s Failed to sync session %s: %s", TAG, session_id, e)

    logger.info(
        "%s Done: %s synced, %s errors, %s sessions",
        TAG, summary.synced_sales, summary.errors, summary.total_sessions,
    )
    return summary
