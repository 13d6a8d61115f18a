"""
Surge Schedule Engine
=====================

Evaluates the administrator-configured surge rules against a moment in time
(now, or the requested start of a booking) and produces a single combined
multiplier.

Matching:
- ``date_range``: calendar date within [start, end] inclusive.  When end <
  start the range wraps the year boundary and recurs annually (month and
  day are compared, the years are ignored).
- ``time_range``: local clock time within [start, end); wraps past midnight
  when end < start.
- ``days_of_week``: weekday index (0=Sunday .. 6=Saturday) in the set.
- No predicates at all: always matches while enabled.

Combination:
- Stackable matches multiply together.
- Non-stackable matches are mutually exclusive; the highest multiplier wins,
  ties broken by rule id so the outcome never depends on list order.
- Final multiplier = stackable product x winning exclusive multiplier (or 1).

Aware datetimes are converted to the service timezone before the clock and
calendar comparisons; naive datetimes are taken as already local.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from pswdirect.core.config import settings
from pswdirect.schemas.pricing import DateRange, SurgeRule, TimeRange
from pswdirect.services.money import quantize_money

logger = logging.getLogger(__name__)

ONE = Decimal("1")


# ---------------------------------------------------------------------------
# Result DTOs
# ---------------------------------------------------------------------------

@dataclass
class SurgeEvaluation:
    """Combined surge multiplier plus the rules that produced it."""
    multiplier: Decimal
    active_rules: list[SurgeRule] = field(default_factory=list)
    stackable_product: Decimal = ONE
    exclusive_rule: Optional[SurgeRule] = None

    @property
    def surge_percentage(self) -> Decimal:
        """Premium as a percentage, e.g. 25 for a 1.25x multiplier."""
        return (self.multiplier - ONE) * 100


@dataclass
class SurgeCheckoutInfo:
    """Surge summary shown to the client at checkout."""
    has_surge: bool
    surge_percentage: Decimal
    surge_amount: Decimal
    adjusted_total: Decimal
    rule_names: list[str]


# ---------------------------------------------------------------------------
# Predicate helpers
# ---------------------------------------------------------------------------

def _to_local(at: datetime, tz_name: Optional[str] = None) -> datetime:
    if at.tzinfo is None:
        return at
    return at.astimezone(ZoneInfo(tz_name or settings.service_timezone)).replace(tzinfo=None)


def weekday_index(d: date) -> int:
    """Weekday with Sunday as 0 and Saturday as 6."""
    return (d.weekday() + 1) % 7


def _date_matches(date_range: DateRange, d: date) -> bool:
    start, end = date_range.start_date, date_range.end_date
    if date_range.wraps:
        # Recurs every year: compare month and day only
        md = (d.month, d.day)
        return md >= (start.month, start.day) or md <= (end.month, end.day)
    if start is not None and d < start:
        return False
    if end is not None and d > end:
        return False
    return True


def _time_matches(time_range: TimeRange, t: time) -> bool:
    start, end = time_range.start_time, time_range.end_time
    if start == end:
        return True
    if time_range.wraps:
        return t >= start or t < end
    return start <= t < end


def _is_well_formed(rule: SurgeRule) -> bool:
    try:
        return Decimal(rule.multiplier).is_finite() and rule.multiplier >= ONE
    except (InvalidOperation, TypeError, ValueError):
        return False


def is_rule_active(
    rule: SurgeRule,
    at: datetime,
    tz_name: Optional[str] = None,
) -> bool:
    """Return True if ``rule`` is enabled and all of its predicates match ``at``."""
    if not rule.enabled:
        return False

    local = _to_local(at, tz_name)

    if rule.date_range is not None and not _date_matches(rule.date_range, local.date()):
        return False

    if rule.time_range is not None and not _time_matches(rule.time_range, local.time()):
        return False

    if rule.days_of_week and weekday_index(local.date()) not in rule.days_of_week:
        return False

    return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def evaluate_surge(
    rules: Iterable[SurgeRule],
    at: datetime,
    tz_name: Optional[str] = None,
) -> SurgeEvaluation:
    """Evaluate every rule against ``at`` and combine the matches."""
    active: list[SurgeRule] = []

    for rule in rules:
        if not _is_well_formed(rule):
            logger.warning(
                "Ignoring malformed surge rule %s (multiplier=%r)",
                getattr(rule, "id", "?"),
                getattr(rule, "multiplier", None),
            )
            continue
        try:
            matched = is_rule_active(rule, at, tz_name)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring surge rule %s: %s", rule.id, exc)
            continue
        if matched:
            logger.debug("Surge rule %s (%s) active at %s", rule.id, rule.name, at)
            active.append(rule)

    stackable_product = ONE
    for rule in active:
        if rule.stackable:
            stackable_product *= rule.multiplier

    exclusive = [r for r in active if not r.stackable]
    winner: Optional[SurgeRule] = None
    if exclusive:
        winner = sorted(exclusive, key=lambda r: (-r.multiplier, r.id))[0]

    multiplier = stackable_product * (winner.multiplier if winner else ONE)

    return SurgeEvaluation(
        multiplier=multiplier,
        active_rules=active,
        stackable_product=stackable_product,
        exclusive_rule=winner,
    )


def evaluate_surge_multiplier(
    rules: Sequence[SurgeRule],
    at: datetime,
    tz_name: Optional[str] = None,
) -> Decimal:
    """Combined surge multiplier for ``at``; 1 when nothing matches."""
    return evaluate_surge(rules, at, tz_name).multiplier


def get_surge_info_for_checkout(
    rules: Sequence[SurgeRule],
    at: datetime,
    subtotal: Decimal,
    tz_name: Optional[str] = None,
) -> SurgeCheckoutInfo:
    """Summarise the surge that applies to a booking subtotal."""
    evaluation = evaluate_surge(rules, at, tz_name)

    return SurgeCheckoutInfo(
        has_surge=evaluation.multiplier > ONE,
        surge_percentage=evaluation.surge_percentage,
        surge_amount=quantize_money(subtotal * (evaluation.multiplier - ONE)),
        adjusted_total=quantize_money(subtotal * evaluation.multiplier),
        rule_names=[r.name for r in evaluation.active_rules],
    )
