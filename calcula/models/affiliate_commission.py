from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey
from calcula.db.base import Base, utcnow, new_uuid


class AffiliateCommission(Base):
    __tablename__ = "affiliate_commissions"

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_id = Column(String(36), ForeignKey("affiliate_sales.id", ondelete="CASCADE"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending | paid | canceled
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
