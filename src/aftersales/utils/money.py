"""Monetary rounding.

Amounts are stored as floats on aggregates but every computed amount passes
through `round_money` exactly once, at the point it is derived, so the same
inputs always settle to the same cents.
"""

from decimal import ROUND_HALF_EVEN, Decimal

_CENTS = Decimal("0.01")


def round_money(amount) -> float:
    """Round to 2 decimal places, half-to-even (banker's rounding)."""
    if amount is None:
        return 0.0
    return float(Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_EVEN))


def line_total(price, quantity) -> float:
    return round_money(Decimal(str(price or 0)) * int(quantity or 0))
