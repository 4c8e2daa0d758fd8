"""Exact decimal money arithmetic.

Amounts are persisted as floats by the aggregates, but every calculation that
sums, subtracts or multiplies money goes through ``Decimal`` so totals across
many orders never drift by a paisa.
"""

from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Convert a float/int/str amount to ``Decimal`` without binary noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value) -> Decimal:
    """Round to 2 places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_float(value) -> float:
    return float(quantize(value))


def to_minor_units(value) -> int:
    """Rupees to paise, as gateways expect integer minor units."""
    return int(quantize(value) * 100)


def from_minor_units(value: int) -> Decimal:
    return quantize(Decimal(int(value)) / 100)
