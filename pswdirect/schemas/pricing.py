"""
Pydantic v2 schemas for surge scheduling and rush (ASAP) pricing.

Covers:
- Surge rules with optional date, time-of-day and weekday predicates
- The rush/ASAP pricing policy

Instances are validated at construction, so anything loaded from the
settings store or a repository is either a well-formed rule or rejected
before it reaches the pricing engine.
"""

from __future__ import annotations

import uuid
from datetime import date, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

class DateRange(BaseModel):
    """Inclusive calendar-date window.

    Either side may be omitted for an open-ended range.  When both are set
    and ``end_date`` is before ``start_date`` the window wraps across the
    year boundary (e.g. Dec 20 -> Jan 3) and recurs every year.
    """

    model_config = ConfigDict(frozen=True)

    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _require_one_side(self) -> "DateRange":
        if self.start_date is None and self.end_date is None:
            raise ValueError("date range needs a start_date or an end_date")
        return self

    @property
    def wraps(self) -> bool:
        return (
            self.start_date is not None
            and self.end_date is not None
            and self.end_date < self.start_date
        )


class TimeRange(BaseModel):
    """Half-open local clock window ``[start_time, end_time)``.

    ``end_time`` earlier than ``start_time`` wraps past midnight
    (22:00 -> 02:00).  Equal ends cover the whole day.
    """

    model_config = ConfigDict(frozen=True)

    start_time: time
    end_time: time

    @property
    def wraps(self) -> bool:
        return self.end_time < self.start_time


# ---------------------------------------------------------------------------
# Surge rule
# ---------------------------------------------------------------------------

class SurgeRule(BaseModel):
    """A named, independently toggleable pricing adjustment.

    A rule with no predicates matches whenever it is enabled.  That is a
    valid configuration.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(default="Surge", max_length=200)
    description: Optional[str] = None
    enabled: bool = True
    multiplier: Decimal = Field(ge=1)
    date_range: Optional[DateRange] = None
    time_range: Optional[TimeRange] = None
    days_of_week: Optional[frozenset[int]] = Field(
        default=None,
        description="Weekday indices, 0=Sunday .. 6=Saturday",
    )
    stackable: bool = True

    @field_validator("days_of_week")
    @classmethod
    def _validate_days(cls, value: Optional[frozenset[int]]) -> Optional[frozenset[int]]:
        if value is None:
            return None
        bad = [d for d in value if not 0 <= d <= 6]
        if bad:
            raise ValueError(f"weekday indices must be 0-6, got {sorted(bad)}")
        # An empty set means "no weekday restriction"
        return value or None

    @property
    def is_unconditional(self) -> bool:
        return (
            self.date_range is None
            and self.time_range is None
            and self.days_of_week is None
        )


# ---------------------------------------------------------------------------
# Rush / ASAP policy
# ---------------------------------------------------------------------------

class RushPolicy(BaseModel):
    """Premium applied when a booking starts within ``lead_time_minutes``."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    multiplier: Decimal = Field(default=Decimal("1.25"), ge=1)
    lead_time_minutes: int = Field(default=30, ge=0)
