from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from calcula.db.base import Base, utcnow, new_uuid


class AffiliateStripeProduct(Base):
    """Affiliate-specific Stripe product/price for one plan × billing combination."""
    __tablename__ = "affiliate_stripe_products"

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_type = Column(String, nullable=False)  # professional | enterprise
    billing = Column(String, nullable=False)  # monthly | yearly
    stripe_product_id = Column(String, nullable=False)
    stripe_price_id = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    affiliate = relationship("Affiliate", back_populates="stripe_products")
