from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class MarkupRequest(BaseModel):
    # Percentages as typed by the user (12.5 == 12,5%)
    percent_fees: float = 0
    percent_taxes: float = 0
    percent_payment: float = 0
    percent_commissions: float = 0
    percent_others: float = 0
    desired_profit: float = 0
    fixed_value: Optional[float] = None
    average_ticket: Optional[float] = None
    unit_cost: Optional[float] = None


class MovementItem(BaseModel):
    origem: str  # estoque | vitrine
    quantidade: Decimal
    custo_unitario: Optional[Decimal] = None
    preco_venda: Optional[Decimal] = None


class MovementTotalRequest(BaseModel):
    items: List[MovementItem]
