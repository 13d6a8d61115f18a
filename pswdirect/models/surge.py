"""
SQLAlchemy model for surge_schedule_rules.

Every predicate column is nullable; a rule with all of them NULL applies
at all times while enabled.
"""

from datetime import date, time
from decimal import Decimal
from typing import Optional

from sqlalchemy import ARRAY, Boolean, Date, Numeric, SmallInteger, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SurgeScheduleRule(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "surge_schedule_rules"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    multiplier: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), nullable=False, server_default="1.0000"
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_stackable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Predicates
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    days_of_week: Mapped[Optional[list[int]]] = mapped_column(
        ARRAY(SmallInteger), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<SurgeScheduleRule(id={self.id}, name={self.name}, "
            f"multiplier={self.multiplier}, enabled={self.is_enabled})>"
        )
