"""
Shared pytest fixtures for the pricing & coverage engine unit tests.

Provides mock database sessions, a session factory that hands them out,
and sample domain objects, so no test needs a live database or network.
"""

from datetime import date, time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pswdirect.integrations.maps.geocoder import clear_geocoding_cache
from pswdirect.schemas.geo import ApprovalStatus, Coordinate, Provider
from pswdirect.schemas.pricing import DateRange, RushPolicy, SurgeRule, TimeRange


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Provides a mock that supports ``db.execute()``, ``db.add()``,
    ``db.get()``, ``db.delete()`` and ``db.commit()`` out of the box.
    Individual tests can configure ``mock_db.execute.return_value`` to
    control query results.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.delete = AsyncMock()
    session.get = AsyncMock(return_value=None)
    return session


@pytest.fixture
def mock_session_factory(mock_db: AsyncMock) -> MagicMock:
    """Stand-in for ``async_sessionmaker``: ``async with factory() as s``
    yields ``mock_db``."""
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = mock_db
    factory.return_value.__aexit__.return_value = False
    return factory


@pytest.fixture
def scalars_result():
    """Builds a mock ``Result`` whose ``scalars().all()`` returns the rows."""

    def _build(rows: list) -> MagicMock:
        result = MagicMock()
        result.scalars.return_value.all.return_value = rows
        return result

    return _build


# ---------------------------------------------------------------------------
# Geocoding cache & clock
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clear_geocoding_cache():
    clear_geocoding_cache()
    yield
    clear_geocoding_cache()


class _FakeClock:
    """Monotonic clock that only moves when code sleeps or a test advances it."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.now += max(seconds, 0.0)


@pytest.fixture
def fake_clock():
    """Drives the Nominatim throttle and retry backoff without real waiting."""
    clock = _FakeClock()
    with patch("pswdirect.integrations.maps.nominatimService.monotonic", clock), patch(
        "pswdirect.integrations.maps.nominatimService.asyncio.sleep", clock.sleep
    ):
        yield clock


# ---------------------------------------------------------------------------
# Coordinates & providers
# ---------------------------------------------------------------------------


@pytest.fixture
def belleville() -> Coordinate:
    """Local-table coordinate for FSA K8N."""
    return Coordinate(latitude=44.1628, longitude=-77.3832)


@pytest.fixture
def kingston() -> Coordinate:
    return Coordinate(latitude=44.2312, longitude=-76.4860)


@pytest.fixture
def approved_provider(belleville: Coordinate) -> Provider:
    return Provider(
        id="psw-approved",
        approval_status=ApprovalStatus.APPROVED,
        coordinate=belleville,
        home_postal_code="K8N 1A1",
        home_city="Belleville",
    )


@pytest.fixture
def pending_provider(belleville: Coordinate) -> Provider:
    return Provider(
        id="psw-pending",
        approval_status=ApprovalStatus.PENDING,
        coordinate=belleville,
    )


# ---------------------------------------------------------------------------
# Pricing configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def rush_policy() -> RushPolicy:
    """Rush enabled at 1.25x for starts within 30 minutes."""
    return RushPolicy(enabled=True, multiplier=Decimal("1.25"), lead_time_minutes=30)


@pytest.fixture
def weekend_rule() -> SurgeRule:
    """Stackable 1.10x on Saturdays and Sundays."""
    return SurgeRule(
        id="weekend",
        name="Weekend",
        multiplier=Decimal("1.10"),
        days_of_week=frozenset({0, 6}),
        stackable=True,
    )


@pytest.fixture
def overnight_rule() -> SurgeRule:
    """Stackable 1.20x from 22:00 to 06:00."""
    return SurgeRule(
        id="overnight",
        name="Overnight",
        multiplier=Decimal("1.20"),
        time_range=TimeRange(start_time=time(22, 0), end_time=time(6, 0)),
        stackable=True,
    )


@pytest.fixture
def holiday_rule() -> SurgeRule:
    """Exclusive 1.50x from Dec 20 to Jan 3, entered with end before start."""
    return SurgeRule(
        id="holidays",
        name="Winter Holidays",
        multiplier=Decimal("1.50"),
        date_range=DateRange(start_date=date(2025, 12, 20), end_date=date(2025, 1, 3)),
        stackable=False,
    )
