from sqlalchemy import Column, String, DateTime, Numeric, Boolean
from calcula.db.base import Base, utcnow, new_uuid


class Produto(Base):
    """Raw material / stock item owned by one account."""
    __tablename__ = "produtos"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    nome = Column(String, nullable=False)
    unidade = Column(String, nullable=False, default="un")
    custo_unitario = Column(Numeric(12, 4), nullable=False, default=0)
    estoque_atual = Column(Numeric(12, 3), nullable=False, default=0)
    estoque_minimo = Column(Numeric(12, 3), nullable=True)
    ativo = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
