"""
Unit tests for the surge-rule repository, provider directory and
unserved-request repository (in-memory and SQLAlchemy variants).
"""

import uuid
from datetime import date, time
from decimal import Decimal

import pytest

from pswdirect.models import PSWProfile, SurgeScheduleRule, UnservedOrder, VettingStatus
from pswdirect.schemas.geo import ApprovalStatus, Coordinate, Provider
from pswdirect.services.coverageService import UnservedRequest
from pswdirect.services.providerDirectory import (
    InMemoryProviderDirectory,
    SqlProviderDirectory,
    provider_from_row,
)
from pswdirect.services.surgeRuleRepository import (
    InMemorySurgeRuleRepository,
    SqlSurgeRuleRepository,
    rule_from_row,
)
from pswdirect.services.unservedRequestRepository import SqlUnservedRequestRepository


def _rule_row(**overrides) -> SurgeScheduleRule:
    values = dict(
        id=uuid.uuid4(),
        name="Weekend",
        description=None,
        multiplier=Decimal("1.10"),
        is_enabled=True,
        is_stackable=True,
        start_date=None,
        end_date=None,
        start_time=None,
        end_time=None,
        days_of_week=[0, 6],
    )
    values.update(overrides)
    return SurgeScheduleRule(**values)


def _psw_row(**overrides) -> PSWProfile:
    values = dict(
        id=uuid.uuid4(),
        vetting_status=VettingStatus.APPROVED,
        is_test=False,
        home_postal_code="K8N 1A1",
        home_city="Belleville",
        home_lat=Decimal("44.1628000"),
        home_lng=Decimal("-77.3832000"),
    )
    values.update(overrides)
    return PSWProfile(**values)


# ---------------------------------------------------------------------------
# Surge rules
# ---------------------------------------------------------------------------


class TestInMemorySurgeRuleRepository:
    @pytest.mark.asyncio
    async def test_crud(self, weekend_rule, overnight_rule):
        repo = InMemorySurgeRuleRepository([weekend_rule])

        await repo.create(overnight_rule.model_copy(update={"enabled": False}))
        assert len(await repo.list()) == 2
        assert [r.id for r in await repo.list_enabled()] == ["weekend"]

        await repo.update(weekend_rule.model_copy(update={"multiplier": Decimal("1.15")}))
        assert (await repo.list_enabled())[0].multiplier == Decimal("1.15")

        assert await repo.delete("weekend") is True
        assert await repo.delete("weekend") is False
        assert [r.id for r in await repo.list()] == ["overnight"]

    @pytest.mark.asyncio
    async def test_update_missing_rule(self, weekend_rule):
        with pytest.raises(LookupError):
            await InMemorySurgeRuleRepository().update(weekend_rule)

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self, weekend_rule):
        repo = InMemorySurgeRuleRepository([weekend_rule])
        with pytest.raises(ValueError):
            await repo.create(weekend_rule)


class TestRuleFromRow:
    def test_full_row(self):
        row = _rule_row(
            start_date=date(2025, 12, 20),
            end_date=date(2025, 1, 3),
            start_time=time(22, 0),
            end_time=time(6, 0),
            is_stackable=False,
        )

        rule = rule_from_row(row)

        assert rule.id == str(row.id)
        assert rule.date_range.wraps is True
        assert rule.time_range.wraps is True
        assert rule.days_of_week == frozenset({0, 6})
        assert rule.stackable is False

    def test_row_without_predicates_is_unconditional(self):
        rule = rule_from_row(_rule_row(days_of_week=None))
        assert rule.is_unconditional is True

    def test_invalid_row_skipped(self):
        assert rule_from_row(_rule_row(multiplier=Decimal("0.5"))) is None
        assert rule_from_row(_rule_row(days_of_week=[9])) is None


class TestSqlSurgeRuleRepository:
    @pytest.mark.asyncio
    async def test_list_enabled_skips_invalid_rows(
        self, mock_session_factory, mock_db, scalars_result
    ):
        good = _rule_row()
        bad = _rule_row(multiplier=Decimal("0.5"))
        mock_db.execute.return_value = scalars_result([good, bad])

        rules = await SqlSurgeRuleRepository(mock_session_factory).list_enabled()

        assert [r.id for r in rules] == [str(good.id)]

    @pytest.mark.asyncio
    async def test_create_assigns_uuid(self, mock_session_factory, mock_db, weekend_rule):
        created = await SqlSurgeRuleRepository(mock_session_factory).create(weekend_rule)

        row = mock_db.add.call_args.args[0]
        assert isinstance(row, SurgeScheduleRule)
        assert row.days_of_week == [0, 6]
        assert created.id == str(row.id)
        uuid.UUID(created.id)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_existing(self, mock_session_factory, mock_db):
        row = _rule_row()
        mock_db.get.return_value = row
        rule = rule_from_row(row).model_copy(update={"multiplier": Decimal("1.30")})

        await SqlSurgeRuleRepository(mock_session_factory).update(rule)

        assert row.multiplier == Decimal("1.30")
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_missing(self, mock_session_factory, weekend_rule):
        with pytest.raises(LookupError):
            await SqlSurgeRuleRepository(mock_session_factory).update(
                weekend_rule.model_copy(update={"id": str(uuid.uuid4())})
            )

    @pytest.mark.asyncio
    async def test_delete(self, mock_session_factory, mock_db):
        row = _rule_row()
        mock_db.get.return_value = row
        repo = SqlSurgeRuleRepository(mock_session_factory)

        assert await repo.delete(str(row.id)) is True
        mock_db.delete.assert_awaited_once_with(row)
        assert await repo.delete("not-a-uuid") is False


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class TestInMemoryProviderDirectory:
    @pytest.mark.asyncio
    async def test_only_approved_listed(self, approved_provider, pending_provider):
        directory = InMemoryProviderDirectory([approved_provider, pending_provider])
        assert await directory.list_approved() == [approved_provider]


class TestSqlProviderDirectory:
    def test_provider_from_row(self):
        row = _psw_row()
        provider = provider_from_row(row)

        assert provider == Provider(
            id=str(row.id),
            approval_status=ApprovalStatus.APPROVED,
            coordinate=Coordinate(latitude=44.1628, longitude=-77.3832),
            home_postal_code="K8N 1A1",
            home_city="Belleville",
        )

    def test_invalid_coordinates_treated_as_missing(self):
        provider = provider_from_row(_psw_row(home_lat=Decimal("123.0")))
        assert provider.coordinate is None

    @pytest.mark.asyncio
    async def test_list_approved(self, mock_session_factory, mock_db, scalars_result):
        rows = [_psw_row(), _psw_row(home_lat=None, home_lng=None)]
        mock_db.execute.return_value = scalars_result(rows)

        providers = await SqlProviderDirectory(mock_session_factory).list_approved()

        assert [p.id for p in providers] == [str(r.id) for r in rows]
        assert providers[1].coordinate is None

    @pytest.mark.asyncio
    async def test_list_missing_coordinates(self, mock_session_factory, mock_db, scalars_result):
        row = _psw_row(home_lat=None, home_lng=None)
        mock_db.execute.return_value = scalars_result([row])

        pending = await SqlProviderDirectory(mock_session_factory).list_missing_coordinates()

        assert len(pending) == 1
        assert pending[0].id == str(row.id)
        assert pending[0].postal_code == "K8N 1A1"
        assert pending[0].has_coordinates is False
        where = str(mock_db.execute.await_args.args[0].whereclause)
        assert "is_test" in where
        assert "psw_profiles.id =" not in where

    @pytest.mark.asyncio
    async def test_list_missing_coordinates_for_one_psw(
        self, mock_session_factory, mock_db, scalars_result
    ):
        row = _psw_row(home_lat=None, home_lng=None, is_test=True)
        mock_db.execute.return_value = scalars_result([row])

        pending = await SqlProviderDirectory(mock_session_factory).list_missing_coordinates(
            str(row.id)
        )

        assert [p.id for p in pending] == [str(row.id)]
        where = str(mock_db.execute.await_args.args[0].whereclause)
        assert "psw_profiles.id =" in where
        assert "is_test" not in where

    @pytest.mark.asyncio
    async def test_malformed_psw_id_matches_nothing(self, mock_session_factory, mock_db):
        pending = await SqlProviderDirectory(mock_session_factory).list_missing_coordinates(
            "not-a-uuid"
        )

        assert pending == []
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_coordinates_commits(self, mock_session_factory, mock_db):
        await SqlProviderDirectory(mock_session_factory).update_coordinates(
            str(uuid.uuid4()), Coordinate(latitude=44.0, longitude=-77.0)
        )

        mock_db.execute.assert_awaited_once()
        mock_db.commit.assert_awaited_once()


# ---------------------------------------------------------------------------
# Unserved requests
# ---------------------------------------------------------------------------


class TestSqlUnservedRequestRepository:
    @pytest.mark.asyncio
    async def test_record(self, mock_session_factory, mock_db):
        request = UnservedRequest(
            city="Bancroft",
            fsa="K0L",
            postal_code="K0L 1C0",
            providers_found=3,
            closest_distance_km=96.42,
            reason="out_of_range",
        )

        await SqlUnservedRequestRepository(mock_session_factory).record(request)

        row = mock_db.add.call_args.args[0]
        assert isinstance(row, UnservedOrder)
        assert row.fsa == "K0L"
        assert row.closest_distance_km == Decimal("96.42")
        assert row.reason == "out_of_range"
        mock_db.commit.assert_awaited_once()
