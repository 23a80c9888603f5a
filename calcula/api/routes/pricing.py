from fastapi import APIRouter, Body, Depends

from calcula.dependencies.auth import AuthenticatedUser, get_current_user
from calcula.schemas.pricing import MarkupRequest, MovementTotalRequest
from calcula.utils.formatters import format_valor
from calcula.utils.pricing import MarkupParams, calc_markup, line_total, origin_from_row, suggested_price

router = APIRouter()


@router.post("/markup")
def markup(
    request: MarkupRequest = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
):
    params = MarkupParams(
        percent_fees=request.percent_fees / 100,
        percent_taxes=request.percent_taxes / 100,
        percent_payment=request.percent_payment / 100,
        percent_commissions=request.percent_commissions / 100,
        percent_others=request.percent_others / 100,
        desired_profit=request.desired_profit / 100,
        fixed_value=request.fixed_value,
        average_ticket=request.average_ticket,
    )
    result = calc_markup(params)
    response = {
        "total_percent": round(result.total_percent * 100, 4),
        "multiplier": round(result.multiplier, 4),
        "effective_multiplier": round(result.effective_multiplier, 4),
    }
    if request.unit_cost is not None:
        price = suggested_price(request.unit_cost, params)
        response["suggested_price"] = price
        response["suggested_price_formatted"] = format_valor(price)
    return response


@router.post("/movement-total")
def movement_total(
    request: MovementTotalRequest = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
):
    """Stock items are valued at cost, showcase items at sale price."""
    lines = []
    for item in request.items:
        origin = origin_from_row(item.origem, item.model_dump())
        lines.append(line_total(origin, item.quantidade))
    total = sum(lines, start=0)
    return {
        "lines": [float(value) for value in lines],
        "total": float(total),
        "total_formatted": format_valor(total),
    }
