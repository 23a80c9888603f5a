from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, UniqueConstraint
from calcula.db.base import Base, utcnow, new_uuid


class AffiliateSale(Base):
    __tablename__ = "affiliate_sales"
    # One sale per checkout session; closes the read-then-write race in reconciliation
    __table_args__ = (UniqueConstraint("stripe_session_id", name="uq_affiliate_sales_stripe_session_id"),)

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id", ondelete="CASCADE"), nullable=False, index=True)
    affiliate_link_id = Column(String(36), ForeignKey("affiliate_links.id", ondelete="SET NULL"), nullable=True)
    customer_email = Column(String, nullable=False, default="")
    customer_name = Column(String, nullable=True)
    customer_user_id = Column(String(36), nullable=True)
    sale_amount = Column(Numeric(12, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    plan_type = Column(String, nullable=False)
    stripe_session_id = Column(String, nullable=False, index=True)
    stripe_payment_intent_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="confirmed")
    sale_date = Column(DateTime, nullable=False, default=utcnow)
    confirmed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<AffiliateSale(id={self.id}, session={self.stripe_session_id}, amount={self.sale_amount})>"
