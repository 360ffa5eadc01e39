"""
Decimal helpers for cart prices.

Line totals and subtotals are summed as Decimal; floats only appear in
display payloads built by CartStateStore.summary().
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Numeric = Union[str, int, float, Decimal, None]

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Numeric) -> Decimal:
    """Price from any wire value; missing or unparseable prices count as zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # float via str keeps 49.9 from becoming 49.899999...
    raw = str(value) if isinstance(value, float) else value
    try:
        return Decimal(raw)
    except (InvalidOperation, ValueError, TypeError):
        return ZERO


def round_money(value: Numeric) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def multiply(value: Numeric, factor: Numeric) -> Decimal:
    return to_decimal(value) * to_decimal(factor)


def to_float(value: Numeric) -> float:
    """Float for JSON display payloads only."""
    return float(to_decimal(value))
