from sqlalchemy import Column, String, DateTime, Numeric
from calcula.db.base import Base, utcnow, new_uuid


class Markup(Base):
    """
    Markup block. Rows with tipo 'sub_receita' are generated per sub-recipe and
    do not count against the plan's markup cap.
    """
    __tablename__ = "markups"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    nome = Column(String, nullable=False)
    tipo = Column(String, nullable=False, default="normal")
    percent_fees = Column(Numeric(8, 4), nullable=False, default=0)
    percent_taxes = Column(Numeric(8, 4), nullable=False, default=0)
    percent_payment = Column(Numeric(8, 4), nullable=False, default=0)
    percent_commissions = Column(Numeric(8, 4), nullable=False, default=0)
    percent_others = Column(Numeric(8, 4), nullable=False, default=0)
    desired_profit = Column(Numeric(8, 4), nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
