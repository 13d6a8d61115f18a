"""
Surge Rule Repository
=====================

CRUD over the administrator-managed surge rules.  The pricing path only ever
calls ``list_enabled()``; the remaining operations back the admin surface.

Rows that no longer validate as a ``SurgeRule`` (multiplier below 1, bad
weekday index, ...) are skipped with a warning rather than failing the whole
read, so one bad row cannot stop pricing.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pswdirect.models.surge import SurgeScheduleRule
from pswdirect.schemas.pricing import DateRange, SurgeRule, TimeRange

logger = logging.getLogger(__name__)


class SurgeRuleRepository(Protocol):
    async def list(self) -> list[SurgeRule]: ...

    async def list_enabled(self) -> list[SurgeRule]: ...

    async def create(self, rule: SurgeRule) -> SurgeRule: ...

    async def update(self, rule: SurgeRule) -> SurgeRule: ...

    async def delete(self, rule_id: str) -> bool: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemorySurgeRuleRepository:
    def __init__(self, rules: Optional[list[SurgeRule]] = None) -> None:
        self._rules: dict[str, SurgeRule] = {r.id: r for r in rules or []}

    async def list(self) -> list[SurgeRule]:
        return list(self._rules.values())

    async def list_enabled(self) -> list[SurgeRule]:
        return [r for r in self._rules.values() if r.enabled]

    async def create(self, rule: SurgeRule) -> SurgeRule:
        if rule.id in self._rules:
            raise ValueError(f"Surge rule {rule.id} already exists")
        self._rules[rule.id] = rule
        return rule

    async def update(self, rule: SurgeRule) -> SurgeRule:
        if rule.id not in self._rules:
            raise LookupError(f"Surge rule {rule.id} not found")
        self._rules[rule.id] = rule
        return rule

    async def delete(self, rule_id: str) -> bool:
        return self._rules.pop(rule_id, None) is not None


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def rule_from_row(row: SurgeScheduleRule) -> Optional[SurgeRule]:
    """Convert a table row to a validated rule, or None if it is invalid."""
    try:
        date_range = None
        if row.start_date is not None or row.end_date is not None:
            date_range = DateRange(start_date=row.start_date, end_date=row.end_date)

        time_range = None
        if row.start_time is not None and row.end_time is not None:
            time_range = TimeRange(start_time=row.start_time, end_time=row.end_time)

        return SurgeRule(
            id=str(row.id),
            name=row.name,
            description=row.description,
            enabled=row.is_enabled,
            multiplier=row.multiplier,
            date_range=date_range,
            time_range=time_range,
            days_of_week=frozenset(row.days_of_week) if row.days_of_week else None,
            stackable=row.is_stackable,
        )
    except ValidationError as exc:
        logger.warning("Skipping invalid surge rule row %s: %s", row.id, exc)
        return None


def _copy_to_row(rule: SurgeRule, row: SurgeScheduleRule) -> None:
    row.name = rule.name
    row.description = rule.description
    row.multiplier = rule.multiplier
    row.is_enabled = rule.enabled
    row.is_stackable = rule.stackable
    row.start_date = rule.date_range.start_date if rule.date_range else None
    row.end_date = rule.date_range.end_date if rule.date_range else None
    row.start_time = rule.time_range.start_time if rule.time_range else None
    row.end_time = rule.time_range.end_time if rule.time_range else None
    row.days_of_week = sorted(rule.days_of_week) if rule.days_of_week else None


class SqlSurgeRuleRepository:
    """``surge_schedule_rules`` table repository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _select(self, enabled_only: bool) -> list[SurgeRule]:
        stmt = select(SurgeScheduleRule).order_by(SurgeScheduleRule.created_at)
        if enabled_only:
            stmt = stmt.where(SurgeScheduleRule.is_enabled.is_(True))

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        rules = [rule_from_row(row) for row in rows]
        return [r for r in rules if r is not None]

    async def list(self) -> list[SurgeRule]:
        return await self._select(enabled_only=False)

    async def list_enabled(self) -> list[SurgeRule]:
        return await self._select(enabled_only=True)

    async def create(self, rule: SurgeRule) -> SurgeRule:
        row = SurgeScheduleRule(id=_parse_uuid(rule.id) or uuid.uuid4())
        _copy_to_row(rule, row)

        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        logger.info("Surge rule %s created (%s, x%s)", row.id, rule.name, rule.multiplier)
        return rule.model_copy(update={"id": str(row.id)})

    async def update(self, rule: SurgeRule) -> SurgeRule:
        rule_uuid = _parse_uuid(rule.id)
        async with self._session_factory() as session:
            row = await session.get(SurgeScheduleRule, rule_uuid) if rule_uuid else None
            if row is None:
                raise LookupError(f"Surge rule {rule.id} not found")
            _copy_to_row(rule, row)
            await session.commit()

        logger.info("Surge rule %s updated", rule.id)
        return rule

    async def delete(self, rule_id: str) -> bool:
        rule_uuid = _parse_uuid(rule_id)
        if rule_uuid is None:
            return False

        async with self._session_factory() as session:
            row = await session.get(SurgeScheduleRule, rule_uuid)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()

        logger.info("Surge rule %s deleted", rule_id)
        return True
