from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric
from calcula.db.base import Base, utcnow, new_uuid


class Invoice(Base):
    """
    One row per paid Stripe invoice, keyed by the Stripe invoice id so webhook
    redeliveries upsert instead of duplicating.
    """

    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=new_uuid)
    subscription_id = Column(String(36), ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False)
    stripe_invoice_id = Column(String, nullable=False, index=True, unique=True)

    # Amount in major units (49.90 for R$ 49,90); stored as decimal for precision
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="brl")

    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
