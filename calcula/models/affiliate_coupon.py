from sqlalchemy import Column, String, DateTime, Integer, Boolean, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from calcula.db.base import Base, utcnow, new_uuid


class AffiliateCoupon(Base):
    """
    Local mirror of a Stripe coupon tied to one affiliate.

    Eligible for use iff is_active, not expired and (no cap or times_redeemed < cap).
    times_redeemed is only incremented by the Stripe webhook path.
    """
    __tablename__ = "affiliate_coupons"

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id", ondelete="CASCADE"), nullable=False, index=True)
    stripe_coupon_id = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    discount_type = Column(String, nullable=False)  # percentage | fixed
    discount_value = Column(Numeric(12, 2), nullable=False)
    max_redemptions = Column(Integer, nullable=True)  # NULL = unlimited
    times_redeemed = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=True)  # NULL = never expires
    created_at = Column(DateTime, default=utcnow, nullable=False)

    affiliate = relationship("Affiliate")

    def __repr__(self):
        return f"<AffiliateCoupon(id={self.id}, stripe_coupon_id={self.stripe_coupon_id}, active={self.is_active})>"
