"""
pt-BR number formatting and parsing (thousands '.', decimal ',').

Every string produced by the format_* helpers parses back through
parse_ptbr_number to the rounded value it displays.
"""
import math
import re
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional

_NUMERIC_PREFIX = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")


def _to_decimal(num) -> Decimal:
    if isinstance(num, Decimal):
        return num
    # str() first so 0.1 stays 0.1 instead of its binary expansion
    return Decimal(str(num))


def _group_thousands(digits: str) -> str:
    groups = []
    while len(digits) > 3:
        groups.insert(0, digits[-3:])
        digits = digits[:-3]
    groups.insert(0, digits)
    return ".".join(groups)


def _format_number(num, min_fraction: int, max_fraction: int) -> str:
    value = _to_decimal(num)
    quantum = Decimal(1).scaleb(-max_fraction)
    value = value.quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    integer, _, fraction = f"{abs(value):f}".partition(".")
    fraction = fraction.rstrip("0")
    if len(fraction) < min_fraction:
        fraction = fraction.ljust(min_fraction, "0")
    text = _group_thousands(integer)
    if fraction:
        text = f"{text},{fraction}"
    return sign + text


def format_valor(num) -> str:
    """Currency: 1234.5 -> 'R$ 1.234,50'."""
    text = _format_number(num, 2, 2)
    if text.startswith("-"):
        return f"-R$ {text[1:]}"
    return f"R$ {text}"


def format_percentual(num) -> str:
    """12.5 -> '12,50%'."""
    return f"{_format_number(num, 2, 2)}%"


def format_quantidade_un(num) -> str:
    """Discrete quantity, no decimals: 1234.6 -> '1.235'."""
    return _format_number(num, 0, 0)


def format_quantidade_continua(num, max_decimais: int = 3) -> str:
    """Continuous quantity (kg, l...): 1.5 -> '1,5', 2.0 -> '2'."""
    return _format_number(num, 0, max_decimais)


FORMATTERS = {
    "valor": format_valor,
    "percentual": format_percentual,
    "quantidade_un": format_quantidade_un,
    "quantidade_continua": format_quantidade_continua,
}


def parse_ptbr_number(value) -> float:
    """
    Parse a user-typed pt-BR number ('R$ 1.234,56', '12,5%', '-3') into a float.

    Dots are thousands separators and the first comma is the decimal mark.
    Anything unparsable becomes 0.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if value is None or value == "":
        return 0.0

    cleaned = re.sub(r"[^\d,.-]", "", str(value))
    cleaned = cleaned.replace(".", "").replace(",", ".", 1)
    match = _NUMERIC_PREFIX.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def to_safe_number(value, default: float = 0) -> float:
    """Coerce anything into a finite number for the database. Never returns NaN."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else default
    if isinstance(value, Decimal):
        try:
            return float(value) if value.is_finite() else default
        except InvalidOperation:
            return default
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d,.-]", "", value).replace(",", ".", 1)
        match = _NUMERIC_PREFIX.match(cleaned)
        if not match:
            return default
        parsed = float(match.group(0))
        return parsed if math.isfinite(parsed) else default
    return default


def validate_numeric_input(
    value: float,
    tipo: str,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
) -> tuple[bool, str]:
    """
    Check a parsed value against the rules of its input type.

    Returns (is_valid, message); message is empty when valid.
    """
    if tipo == "quantidade_un" and float(value) != int(value):
        return False, "Apenas números inteiros são permitidos"

    if tipo == "percentual" and max_value is None:
        if value < 0 or value > 100:
            return False, "Percentual deve estar entre 0% e 100%"

    if min_value is not None and value < min_value:
        shown = format_valor(min_value) if tipo == "valor" else min_value
        return False, f"Valor mínimo: {shown}"

    if max_value is not None and value > max_value:
        shown = format_valor(max_value) if tipo == "valor" else max_value
        return False, f"Valor máximo: {shown}"

    return True, ""
