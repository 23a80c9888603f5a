from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint
from calcula.db.base import Base, utcnow, new_uuid


class UserConfiguration(Base):
    __tablename__ = "user_configurations"
    __table_args__ = (UniqueConstraint("user_id", "type", name="uq_user_configurations_user_type"),)

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String, nullable=False)
    configuration = Column(JSON, nullable=True)  # Opaque client payload
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
