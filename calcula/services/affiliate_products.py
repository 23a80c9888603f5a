"""
Per-affiliate Stripe products: one product + recurring price for every
plan x billing combination, mirrored in affiliate_stripe_products.
"""
import logging

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from calcula.core.errors import RemoteServiceError
from calcula.models.affiliate import Affiliate
from calcula.models.affiliate_stripe_product import AffiliateStripeProduct
from calcula.services import stripe_gateway
from calcula.services.stripe_gateway import field

logger = logging.getLogger(__name__)

# Base prices in cents (BRL)
BASE_PRICES = {
    "professional_monthly": 4990,
    "professional_yearly": 47880,
    "enterprise_monthly": 8990,
    "enterprise_yearly": 83880,
}

PRODUCT_PLAN_NAMES = {
    "professional": "CalculaAI Professional",
    "enterprise": "CalculaAI Enterprise",
}


def product_name(plan_type: str, billing: str, affiliate_name: str) -> str:
    period = "Mensal" if billing == "monthly" else "Anual"
    return f"{PRODUCT_PLAN_NAMES[plan_type]} {period} - {affiliate_name} (Afiliado)"


def _discard_remote(affiliate: Affiliate, created: list) -> None:
    """Archive products and prices left behind by a failed creation run."""
    for product_id, price_id in created:
        try:
            if price_id:
                stripe_gateway.deactivate_price(price_id)
            stripe_gateway.archive_product(product_id)
            logger.info("Archived orphan product %s for affiliate %s", product_id, affiliate.id)
        except stripe.StripeError as e:
            logger.error(
                "Could not archive orphan product %s (price %s) for affiliate %s: %s",
                product_id, price_id, affiliate.id, e,
            )


def create_affiliate_products(db: Session, affiliate: Affiliate) -> list[dict]:
    """
    Create the 4 products/prices for one affiliate. Raises on the first failure,
    after archiving whatever was already created in Stripe for this affiliate.
    """
    logger.info("Creating products for affiliate %s (%s)", affiliate.name, affiliate.id)
    products = []
    created = []  # (product_id, price_id) pairs already in Stripe

    for plan_type in ("professional", "enterprise"):
        for billing in ("monthly", "yearly"):
            amount = BASE_PRICES[f"{plan_type}_{billing}"]
            metadata = {
                "affiliate_id": affiliate.id,
                "affiliate_name": affiliate.name,
                "plan_type": plan_type,
                "billing": billing,
            }
            product = None
            try:
                product = stripe_gateway.create_product(
                    name=product_name(plan_type, billing, affiliate.name),
                    description=f"Plano {plan_type} {billing} vendido através do afiliado {affiliate.name}",
                    metadata={**metadata, "created_by": "affiliate_system"},
                )
                price = stripe_gateway.create_price(
                    product=field(product, "id"),
                    unit_amount=amount,
                    currency="brl",
                    recurring={"interval": "month" if billing == "monthly" else "year"},
                    metadata=metadata,
                )
            except stripe.StripeError as e:
                logger.exception("Stripe error creating %s %s for affiliate %s", plan_type, billing, affiliate.id)
                if product is not None:
                    created.append((field(product, "id"), None))
                _discard_remote(affiliate, created)
                db.rollback()
                raise RemoteServiceError(f"Stripe product creation failed: {e}") from e

            created.append((field(product, "id"), field(price, "id")))
            db.add(AffiliateStripeProduct(
                affiliate_id=affiliate.id,
                plan_type=plan_type,
                billing=billing,
                stripe_product_id=field(product, "id"),
                stripe_price_id=field(price, "id"),
            ))
            products.append({
                "planType": plan_type,
                "billing": billing,
                "productId": field(product, "id"),
                "priceId": field(price, "id"),
                "amount": amount,
            })

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error saving products for affiliate %s: %s", affiliate.id, e)
        _discard_remote(affiliate, created)
        raise RemoteServiceError(f"Erro ao salvar produtos: {e}") from e

    logger.info("Products created for %s", affiliate.name)
    return products


def migrate_existing_affiliates(db: Session) -> dict:
    """Create products for every active affiliate that has none. One failure never stops the batch."""
    affiliates = db.query(Affiliate).filter(Affiliate.status == "active").all()
    pending = [a for a in affiliates if not a.stripe_products]
    logger.info("Migrating %s affiliates without products", len(pending))

    migrated = 0
    errors = []
    for affiliate in pending:
        try:
            create_affiliate_products(db, affiliate)
            migrated += 1
        except Exception as e:
            db.rollback()
            logger.error("Migration failed for affiliate %s: %s", affiliate.id, e)
            errors.append({"affiliateId": affiliate.id, "affiliateName": affiliate.name, "error": str(e)})

    return {
        "success": True,
        "message": f"Migração concluída: {migrated} sucessos, {len(errors)} erros",
        "migratedCount": migrated,
        "errorCount": len(errors),
        "errors": errors,
    }
