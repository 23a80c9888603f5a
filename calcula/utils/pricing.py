"""
Markup pricing and stock valuation helpers.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from calcula.core.errors import ValidationError


@dataclass
class MarkupParams:
    # All percentages as fractions (0.1 == 10%)
    percent_fees: float = 0
    percent_taxes: float = 0
    percent_payment: float = 0
    percent_commissions: float = 0
    percent_others: float = 0
    desired_profit: float = 0
    fixed_value: Optional[float] = None
    average_ticket: Optional[float] = None


@dataclass
class MarkupResult:
    total_percent: float
    multiplier: float
    effective_multiplier: float


def calc_markup(params: MarkupParams) -> MarkupResult:
    total = (
        params.percent_fees
        + params.percent_taxes
        + params.percent_payment
        + params.percent_commissions
        + params.percent_others
        + params.desired_profit
    )
    if total >= 1:
        raise ValidationError("A soma dos percentuais deve ser menor que 100%")

    multiplier = 1 / (1 - total)
    effective = multiplier
    if params.fixed_value and params.average_ticket:
        effective += params.fixed_value / params.average_ticket

    return MarkupResult(total_percent=total, multiplier=multiplier, effective_multiplier=effective)


def suggested_price(unit_cost: float, params: MarkupParams) -> float:
    return round(unit_cost * calc_markup(params).effective_multiplier, 2)


@dataclass(frozen=True)
class StockOrigin:
    """Item moved from raw-material stock: valued at cost."""
    custo_unitario: Decimal


@dataclass(frozen=True)
class ShowcaseOrigin:
    """Finished recipe units from the showcase (vitrine): valued at sale price."""
    preco_venda: Optional[Decimal]


MovementOrigin = Union[StockOrigin, ShowcaseOrigin]


def unit_value(origin: MovementOrigin) -> Decimal:
    if isinstance(origin, StockOrigin):
        return Decimal(origin.custo_unitario or 0)
    if isinstance(origin, ShowcaseOrigin):
        return Decimal(origin.preco_venda or 0)
    raise ValidationError(f"Origem desconhecida: {origin!r}")


def line_total(origin: MovementOrigin, quantidade) -> Decimal:
    return (unit_value(origin) * Decimal(str(quantidade))).quantize(Decimal("0.01"))


def origin_from_row(origem: str, row: dict) -> MovementOrigin:
    """Build the variant from the 'estoque' | 'vitrine' tag stored with a movement."""
    if origem == "estoque":
        return StockOrigin(custo_unitario=Decimal(str(row.get("custo_unitario") or 0)))
    if origem == "vitrine":
        preco = row.get("preco_venda")
        return ShowcaseOrigin(preco_venda=Decimal(str(preco)) if preco is not None else None)
    raise ValidationError(f"Origem inválida: {origem}")
