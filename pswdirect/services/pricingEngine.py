"""
Booking Pricing Engine
======================

Calculates the chargeable hourly rate for a booking from:
- The service base rate
- Scheduled surge rules (see ``surgeEngine``)
- The rush/ASAP premium, applied when the requested start falls within the
  configured lead-time window of "now"

    final_rate = base_rate x surge_multiplier x (asap_multiplier if eligible else 1)

All functions are pure.  Surge rules and the rush policy are passed in by the
caller, who reads them from the configuration service at request time.
Rounding to cents happens once, on the final figure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from pswdirect.schemas.pricing import RushPolicy, SurgeRule
from pswdirect.services.money import quantize_money, to_cents
from pswdirect.services.surgeEngine import evaluate_surge

logger = logging.getLogger(__name__)

ONE = Decimal("1")


# ---------------------------------------------------------------------------
# Response DTOs
# ---------------------------------------------------------------------------

@dataclass
class MultiplierDetail:
    """A single pricing multiplier that was applied."""
    rule_name: str
    rule_type: str
    multiplier: Decimal
    reason: str


@dataclass
class PriceQuote:
    """Hourly rate for a booking with the full multiplier chain."""
    base_rate: Decimal
    surge_multiplier: Decimal
    asap_eligible: bool
    asap_multiplier: Decimal
    combined_multiplier: Decimal
    final_rate: Decimal
    multiplier_details: list[MultiplierDetail] = field(default_factory=list)
    requested_start: Optional[datetime] = None

    @property
    def final_rate_cents(self) -> int:
        return to_cents(self.final_rate)


# ---------------------------------------------------------------------------
# Rush / ASAP
# ---------------------------------------------------------------------------

def is_asap_eligible(
    requested_start: datetime,
    now: datetime,
    lead_time_minutes: int,
) -> bool:
    """True when ``requested_start`` is not in the past and begins within
    ``lead_time_minutes`` of ``now`` (boundary inclusive).

    A requested start in the past is not eligible; rejecting such a booking
    is the caller's job.
    """
    if requested_start < now:
        return False
    return requested_start - now <= timedelta(minutes=lead_time_minutes)


def rush_multiplier(
    policy: RushPolicy,
    requested_start: datetime,
    now: datetime,
) -> Decimal:
    """The rush multiplier to apply, or 1 when disabled or not eligible."""
    if not policy.enabled:
        return ONE
    if is_asap_eligible(requested_start, now, policy.lead_time_minutes):
        return policy.multiplier
    return ONE


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

def quote_hourly_rate(
    base_rate: Decimal,
    requested_start: datetime,
    now: datetime,
    rules: Sequence[SurgeRule],
    rush_policy: RushPolicy,
    tz_name: Optional[str] = None,
) -> PriceQuote:
    """Price one booking hour.

    Surge rules are evaluated at the booking's requested start, not at the
    moment the quote is produced.

    Raises:
        ValueError: If ``base_rate`` is not positive.
    """
    if base_rate <= 0:
        raise ValueError(f"Base rate must be positive, got {base_rate}")

    details: list[MultiplierDetail] = []

    surge = evaluate_surge(rules, requested_start, tz_name)
    for rule in surge.active_rules:
        if not rule.stackable and rule is not surge.exclusive_rule:
            continue
        details.append(MultiplierDetail(
            rule_name=rule.name,
            rule_type="surge_stackable" if rule.stackable else "surge_exclusive",
            multiplier=rule.multiplier,
            reason=rule.description or f"Surge rule: {rule.name}",
        ))

    eligible = rush_policy.enabled and is_asap_eligible(
        requested_start, now, rush_policy.lead_time_minutes
    )
    asap = rush_policy.multiplier if eligible else ONE
    if eligible:
        details.append(MultiplierDetail(
            rule_name="Rush / ASAP",
            rule_type="asap_premium",
            multiplier=asap,
            reason=(
                f"Requested start within {rush_policy.lead_time_minutes} minutes"
            ),
        ))

    combined = surge.multiplier * asap
    final_rate = quantize_money(base_rate * combined)

    logger.debug(
        "Quoted %s/hr (base=%s surge=%s asap=%s) for start %s",
        final_rate,
        base_rate,
        surge.multiplier,
        asap,
        requested_start,
    )

    return PriceQuote(
        base_rate=base_rate,
        surge_multiplier=surge.multiplier,
        asap_eligible=eligible,
        asap_multiplier=asap,
        combined_multiplier=combined,
        final_rate=final_rate,
        multiplier_details=details,
        requested_start=requested_start,
    )


def estimate_booking_total(quote: PriceQuote, hours: Decimal) -> Decimal:
    """Total for ``hours`` booked at the quoted rate.

    Uses the unrounded rate so the only rounding is on the total.
    """
    if hours <= 0:
        raise ValueError(f"Booked hours must be positive, got {hours}")
    return quantize_money(quote.base_rate * quote.combined_multiplier * hours)
