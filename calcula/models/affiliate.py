from sqlalchemy import Column, String, DateTime, Numeric
from sqlalchemy.orm import relationship
from calcula.db.base import Base, utcnow, new_uuid


class Affiliate(Base):
    __tablename__ = "affiliates"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=True, index=True)  # Partner's own login, if any
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="active")  # active | inactive | pending
    commission_type = Column(String, nullable=False, default="percentage")  # percentage | fixed
    commission_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    commission_fixed_amount = Column(Numeric(12, 2), nullable=False, default=0)
    # Running totals, maintained by the reconciliation / webhook paths
    total_sales = Column(Numeric(12, 2), nullable=False, default=0)
    total_commissions = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    links = relationship("AffiliateLink", back_populates="affiliate")
    stripe_products = relationship("AffiliateStripeProduct", back_populates="affiliate")

    def __repr__(self):
        return f"<Affiliate(id={self.id}, name={self.name}, status={self.status})>"
