from sqlalchemy import Column, String, DateTime
from calcula.db.base import Base, utcnow, new_uuid


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    action = Column(String, nullable=False)
    type = Column(String, nullable=False, default="info")  # create | update | delete | auth | info
    status = Column(String, nullable=False, default="success")
    description = Column(String, nullable=True)
    value = Column(String, nullable=True)
    table_name = Column(String, nullable=True)
    record_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
