from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from calcula.db.base import Base, utcnow, new_uuid


class AffiliateCouponRedemption(Base):
    """One row per (coupon, checkout session); Stripe may deliver the same webhook more than once."""
    __tablename__ = "affiliate_coupon_redemptions"
    __table_args__ = (
        UniqueConstraint("coupon_id", "stripe_session_id", name="uq_affiliate_coupon_redemptions_coupon_session"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    coupon_id = Column(String(36), ForeignKey("affiliate_coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    stripe_session_id = Column(String, nullable=False)
    redeemed_at = Column(DateTime, default=utcnow, nullable=False)
