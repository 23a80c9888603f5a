from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from calcula.db.base import Base, utcnow, new_uuid


class AffiliateLink(Base):
    __tablename__ = "affiliate_links"

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id", ondelete="CASCADE"), nullable=False, index=True)
    link_code = Column(String, unique=True, nullable=False, index=True)  # value carried by the aff_code cookie
    clicks_count = Column(Integer, nullable=False, default=0)
    conversions_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    affiliate = relationship("Affiliate", back_populates="links")
