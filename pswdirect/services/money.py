"""Currency rounding helpers shared by pricing and overtime billing."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def quantize_money(amount: Decimal) -> Decimal:
    """Round to the minor unit (cents), half-up."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    """Convert a major-unit amount to integer cents, half-up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
