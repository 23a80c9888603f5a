from sqlalchemy import Column, String, DateTime, UniqueConstraint
from calcula.db.base import Base, utcnow, new_uuid


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    role = Column(String, nullable=False)  # owner | admin | hr_manager | employee | viewer
    granted_by = Column(String(36), nullable=True)
    granted_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)  # NULL = permanent grant
