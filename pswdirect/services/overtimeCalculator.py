"""
Overtime Billing Calculator
===========================

Quantizes minutes worked past the scheduled end of a shift into billable
blocks and prices them.

Tiers:
- 0-14 min: grace period, nothing billed (the event is still recorded)
- 15-30 min: 30 minutes
- 31-60 min: 60 minutes
- 60+ min: rounded up to the next full hour

The client charge and the PSW's overtime pay share ``billable_minutes`` but
come from different rate tables and are never derived from each other.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal

from pswdirect.services.money import quantize_money, to_cents

GRACE_PERIOD_MINUTES = 14
HALF_HOUR_BLOCK_MAX_MINUTES = 30
FULL_HOUR_BLOCK_MAX_MINUTES = 60

# PSW overtime pay per client billing rate: (minimum client rate, PSW rate)
PROVIDER_PAYOUT_RATES: list[tuple[Decimal, Decimal]] = [
    (Decimal("35"), Decimal("28")),
    (Decimal("30"), Decimal("25")),
    (Decimal("0"), Decimal("22")),
]


@dataclass(frozen=True)
class OvertimeCharge:
    overtime_minutes: int
    billable_minutes: int
    charge_amount: Decimal
    description: str

    @property
    def is_chargeable(self) -> bool:
        return self.charge_amount > 0

    @property
    def charge_amount_cents(self) -> int:
        return to_cents(self.charge_amount)


def calculate_billable_minutes(overtime_minutes: int) -> int:
    """Map raw overtime minutes onto the billable block."""
    if overtime_minutes < 0:
        raise ValueError(f"Overtime minutes cannot be negative, got {overtime_minutes}")
    if overtime_minutes <= GRACE_PERIOD_MINUTES:
        return 0
    if overtime_minutes <= HALF_HOUR_BLOCK_MAX_MINUTES:
        return 30
    if overtime_minutes <= FULL_HOUR_BLOCK_MAX_MINUTES:
        return 60
    return math.ceil(overtime_minutes / 60) * 60


def _describe(billable_minutes: int) -> str:
    if billable_minutes == 0:
        return "Within grace period"
    if billable_minutes == 30:
        return "30-minute overtime block"
    hours = billable_minutes // 60
    if hours == 1:
        return "1-hour overtime block"
    return f"{hours}-hour overtime block"


def compute_overtime_charge(overtime_minutes: int, hourly_rate: Decimal) -> OvertimeCharge:
    """Billable minutes and the client charge for ``overtime_minutes``.

    Raises:
        ValueError: If minutes are negative or the rate is not positive.
    """
    if hourly_rate <= 0:
        raise ValueError(f"Hourly rate must be positive, got {hourly_rate}")

    billable = calculate_billable_minutes(overtime_minutes)
    charge = quantize_money(Decimal(billable) / Decimal(60) * hourly_rate)

    return OvertimeCharge(
        overtime_minutes=overtime_minutes,
        billable_minutes=billable,
        charge_amount=charge,
        description=_describe(billable),
    )


def provider_payout_rate(client_hourly_rate: Decimal) -> Decimal:
    """PSW hourly rate paid for a shift billed at ``client_hourly_rate``."""
    for threshold, payout in PROVIDER_PAYOUT_RATES:
        if client_hourly_rate >= threshold:
            return payout
    return PROVIDER_PAYOUT_RATES[-1][1]


def compute_provider_overtime_pay(billable_minutes: int, payout_hourly_rate: Decimal) -> Decimal:
    """PSW overtime pay for ``billable_minutes`` at the payout rate."""
    if billable_minutes < 0:
        raise ValueError(f"Billable minutes cannot be negative, got {billable_minutes}")
    return quantize_money(Decimal(billable_minutes) / Decimal(60) * payout_hourly_rate)
