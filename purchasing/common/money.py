"""
Helpers de redondeo monetario (half-up, como en facturación)
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

TWO_PLACES = Decimal('0.01')
FOUR_PLACES = Decimal('0.0001')
ZERO = Decimal('0')


def to_decimal(value: Any) -> Decimal:
    """Convertir un valor numérico a Decimal sin pasar por float."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return ZERO


def round2(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round4(value: Any) -> Decimal:
    return to_decimal(value).quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


def format_rate(rate: Any) -> str:
    """Porcentaje sin ceros sobrantes: Decimal('21.00') -> '21'."""
    normalized = to_decimal(rate).normalize()
    return format(normalized, 'f')
