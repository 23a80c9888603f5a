from sqlalchemy import Column, String, DateTime, Numeric
from calcula.db.base import Base, utcnow, new_uuid


class Receita(Base):
    """Recipe; its finished units are what the showcase (vitrine) sells."""
    __tablename__ = "receitas"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    nome = Column(String, nullable=False)
    rendimento = Column(Numeric(12, 3), nullable=True)
    custo_total = Column(Numeric(12, 2), nullable=True)
    preco_venda = Column(Numeric(12, 2), nullable=True)
    estoque_vitrine = Column(Numeric(12, 3), nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
