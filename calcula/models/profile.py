from sqlalchemy import Column, String, Boolean, DateTime, Integer
from calcula.db.base import Base, utcnow, new_uuid


class Profile(Base):
    """
    One row per Supabase auth user. Holds the subscription tier that every
    plan-limit decision reads; only the webhook/sync path and admins change it.
    """
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), unique=True, index=True, nullable=False)  # auth.users id (JWT sub)
    email = Column(String, nullable=True, index=True)
    full_name = Column(String, nullable=True)
    business_name = Column(String, nullable=True)
    plan = Column(String, nullable=False, default="free")  # free | professional | enterprise
    billing = Column(String, nullable=False, default="monthly")  # monthly | yearly
    plan_expires_at = Column(DateTime, nullable=True)
    pdf_exports_count = Column(Integer, nullable=False, default=0)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Profile(user_id={self.user_id}, plan={self.plan}, billing={self.billing})>"
