from sqlalchemy import Column, String, DateTime
from calcula.db.base import Base, utcnow, new_uuid


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=True, index=True)  # NULL until the buyer signs up
    customer_email = Column(String, nullable=True, index=True)
    provider = Column(String, nullable=False, default="stripe")
    stripe_subscription_id = Column(String, unique=True, nullable=False)
    stripe_customer_id = Column(String, nullable=True)
    plan = Column(String, nullable=False, default="professional")
    billing_interval = Column(String, nullable=True, default="monthly")  # monthly | yearly
    status = Column(String, nullable=False, default="inactive")
    current_period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
