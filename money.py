from __future__ import annotations

from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Number = Union[Decimal, int, float, str, None]

ZERO = Decimal("0")
CENT = Decimal("0.01")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """Coerce a raw numeric field to Decimal; anything unusable becomes zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        return ZERO
    elif isinstance(value, int):
        return Decimal(value)
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def cents_to_decimal(cents: Number) -> Decimal:
    return to_decimal(cents) / _HUNDRED


def _round_to(value: Number, exponent: Decimal) -> Decimal:
    amount = to_decimal(value)
    # Ties go toward +infinity: up for positives, toward zero for negatives.
    rounding = ROUND_HALF_UP if amount >= 0 else ROUND_HALF_DOWN
    return amount.quantize(exponent, rounding=rounding)


def round_money(value: Number) -> Decimal:
    return _round_to(value, CENT)


def round_whole(value: Number) -> int:
    return int(_round_to(value, _ONE))


def money_out(value: Number) -> float:
    """Round to cents and convert for a JSON response."""
    return float(round_money(value))
