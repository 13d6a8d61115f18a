"""
High-level geocoding service
============================

Turns a postal code or free-text address into coordinates using two tiers,
tried in order:

  1. Local lookup: the static FSA table in ``postalCodes``.  Free, instant,
     neighbourhood-level precision.
  2. Remote lookup: Nominatim, with the best available search string.
     Slow, precise, and subject to a one-request-per-second usage policy.

A miss on both tiers, or any remote failure, yields ``None``; callers decide
whether that blocks the operation or is retried later.

``geocode_missing()`` backfills coordinates for a batch of rows.  Remote
requests inside one run, retries included, are strictly serial with a minimum
gap between them, and every success is persisted before the next row is
attempted, so a run that is cancelled midway keeps the progress it made.

An in-memory LRU cache (1 000 entries) avoids repeating remote lookups for
the same query.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Final, Iterable, Optional

import httpx

from pswdirect.core.config import settings
from pswdirect.integrations.maps import nominatimService
from pswdirect.integrations.maps.nominatimService import GeocodingError, RequestThrottle
from pswdirect.integrations.maps.postalCodes import format_postal_code, lookup_fsa
from pswdirect.schemas.geo import Coordinate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CACHE_MAX_SIZE: Final[int] = 1000
_MIN_FREEFORM_LENGTH: Final[int] = 5

SOURCE_LOCAL: Final[str] = "local"
SOURCE_REMOTE: Final[str] = "remote"


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GeocodingResult:
    """A resolved location and which tier produced it."""

    coordinate: Coordinate
    display_name: str
    source: str


@dataclass
class GeocodeRow:
    """A record whose coordinates may need backfilling."""

    id: str
    postal_code: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class BatchGeocodeResult:
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.updated + self.skipped + self.failed


PersistFn = Callable[[str, Coordinate], Awaitable[None]]


# ---------------------------------------------------------------------------
# Remote result cache
# ---------------------------------------------------------------------------


class _RemoteResultCache:
    """Bounded LRU of successful Nominatim lookups, keyed on the query.

    Queries are compared case- and whitespace-insensitively.  Misses are
    never stored, so a place Nominatim learns about later is picked up.
    """

    def __init__(self, capacity: int = _CACHE_MAX_SIZE) -> None:
        self.capacity = capacity
        self.hits = 0
        self.misses = 0
        self._entries: OrderedDict[str, GeocodingResult] = OrderedDict()

    @staticmethod
    def _key(query: str) -> str:
        return " ".join(query.lower().split())

    def lookup(self, query: str) -> Optional[GeocodingResult]:
        key = self._key(query)
        result = self._entries.get(key)
        if result is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return result

    def remember(self, query: str, result: GeocodingResult) -> None:
        key = self._key(query)
        self._entries[key] = result
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)


_cache = _RemoteResultCache()


def clear_geocoding_cache() -> None:
    """Drop every cached remote lookup."""
    _cache.clear()
    logger.info("Geocoding cache cleared")


# ---------------------------------------------------------------------------
# Query composition
# ---------------------------------------------------------------------------


def compose_search_query(
    postal_code: str | None = None,
    city: str | None = None,
    region: str | None = None,
    country: str = "Canada",
) -> str:
    """Comma-separated search string from whatever components are present."""
    formatted = format_postal_code(postal_code) if postal_code else ""
    parts = [p.strip() for p in (formatted, city or "", region or "", country) if p and p.strip()]
    return ", ".join(parts)


def _freeform_query(address: str) -> str:
    address = address.strip()
    return address if "canada" in address.lower() else f"{address}, Canada"


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


def resolve_local(postal_code: str | None) -> Optional[GeocodingResult]:
    """Tier 1: the static FSA table."""
    hit = lookup_fsa(postal_code)
    if hit is None:
        return None
    coordinate, label = hit
    return GeocodingResult(coordinate=coordinate, display_name=label, source=SOURCE_LOCAL)


async def _remote_lookup(
    query: str,
    client: httpx.AsyncClient | None,
    throttle: RequestThrottle | None,
) -> Optional[GeocodingResult]:
    cached = _cache.lookup(query)
    if cached is not None:
        logger.debug("Geocoding cache hit for '%s'", query)
        return cached

    data = await nominatimService.search(query, client=client, throttle=throttle)
    if data is None:
        return None

    result = GeocodingResult(
        coordinate=Coordinate(latitude=data["lat"], longitude=data["lng"]),
        display_name=data["display_name"],
        source=SOURCE_REMOTE,
    )
    _cache.remember(query, result)
    return result


async def resolve_remote(
    postal_code: str | None = None,
    freeform_address: str | None = None,
    *,
    city: str | None = None,
    region: str | None = None,
    client: httpx.AsyncClient | None = None,
    throttle: RequestThrottle | None = None,
) -> Optional[GeocodingResult]:
    """Tier 2: Nominatim.

    Tries the free-text address first when one is given, then falls back to
    the postal code / city / region composition.  Remote errors are logged
    and reported as a miss.
    """
    queries: list[str] = []
    if freeform_address and len(freeform_address.strip()) >= _MIN_FREEFORM_LENGTH:
        queries.append(_freeform_query(freeform_address))
    if postal_code or city:
        queries.append(
            compose_search_query(
                postal_code, city, region or settings.nominatim_default_region
            )
        )

    for query in queries:
        try:
            result = await _remote_lookup(query, client, throttle)
        except GeocodingError as exc:
            logger.warning("Remote geocoding failed for '%s': %s", query, exc)
            return None
        if result is not None:
            return result
        logger.info("Remote geocoding returned no results for '%s'", query)

    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def resolve_location(
    postal_code: str | None = None,
    freeform_address: str | None = None,
    *,
    city: str | None = None,
    region: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> Optional[GeocodingResult]:
    """Resolve a location, local table first, Nominatim second."""
    local = resolve_local(postal_code)
    if local is not None:
        logger.debug("Resolved '%s' from local FSA table", postal_code)
        return local

    result = await resolve_remote(
        postal_code, freeform_address, city=city, region=region, client=client
    )
    if result is None:
        logger.warning(
            "Could not resolve location (postal=%r, address=%r)",
            postal_code,
            freeform_address,
        )
    return result


async def resolve_coordinates(
    postal_code: str | None = None,
    freeform_address: str | None = None,
    *,
    city: str | None = None,
    region: str | None = None,
) -> Optional[Coordinate]:
    """Coordinate for a postal code or address, or None if unresolvable."""
    result = await resolve_location(
        postal_code, freeform_address, city=city, region=region
    )
    return result.coordinate if result else None


async def geocode_missing(
    rows: Iterable[GeocodeRow],
    persist: PersistFn,
    *,
    delay_seconds: float | None = None,
    use_local_table: bool = False,
    client: httpx.AsyncClient | None = None,
) -> BatchGeocodeResult:
    """Backfill coordinates for rows that lack them.

    - Rows that already have coordinates are skipped, never overwritten.
    - Rows with neither a postal code nor a city are skipped.
    - Remaining rows are geocoded one at a time.  Every Nominatim request,
      retries included, starts at least ``delay_seconds`` (default 1.1 s)
      after the previous one finished.
    - Each success is persisted immediately through ``persist``.

    Cancelling the task running this coroutine simply stops it; rows
    already persisted stay persisted.

    Args:
        rows: Records to consider.
        persist: ``async persist(row_id, coordinate)``; raising marks the row
            as failed.
        delay_seconds: Minimum gap between consecutive remote requests.
        use_local_table: Accept a local FSA hit instead of going remote.
            Off by default because provider homes want precise coordinates.
        client: Shared HTTP client; one is opened for the run when omitted.

    Returns:
        BatchGeocodeResult with updated / skipped / failed counts.
    """
    delay = settings.geocode_batch_delay_seconds if delay_seconds is None else delay_seconds
    throttle = RequestThrottle(delay)

    if client is None:
        async with httpx.AsyncClient(
            headers={"User-Agent": settings.nominatim_user_agent}
        ) as own_client:
            outcome = await _geocode_rows(rows, persist, own_client, throttle, use_local_table)
    else:
        outcome = await _geocode_rows(rows, persist, client, throttle, use_local_table)

    logger.info(
        "Batch geocode finished: %d updated, %d skipped, %d failed",
        outcome.updated,
        outcome.skipped,
        outcome.failed,
    )
    return outcome


async def _geocode_rows(
    rows: Iterable[GeocodeRow],
    persist: PersistFn,
    client: httpx.AsyncClient,
    throttle: RequestThrottle,
    use_local_table: bool,
) -> BatchGeocodeResult:
    outcome = BatchGeocodeResult()

    for row in rows:
        if row.has_coordinates:
            outcome.skipped += 1
            continue
        if not row.postal_code and not row.city:
            logger.debug("Skipping row %s: no postal code or city", row.id)
            outcome.skipped += 1
            continue

        result: Optional[GeocodingResult] = None
        if use_local_table:
            result = resolve_local(row.postal_code)
        if result is None:
            result = await resolve_remote(
                row.postal_code,
                city=row.city,
                client=client,
                throttle=throttle,
            )

        if result is None:
            outcome.failed += 1
            continue

        try:
            await persist(row.id, result.coordinate)
        except Exception:
            logger.exception("Failed to persist coordinates for row %s", row.id)
            outcome.failed += 1
            continue

        row.latitude = result.coordinate.latitude
        row.longitude = result.coordinate.longitude
        outcome.updated += 1

    return outcome
