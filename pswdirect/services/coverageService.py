"""
Coverage Service
================

Decides whether a client location can be served: resolves the client's
coordinate, measures the great-circle distance to every approved PSW and
compares the nearest against the active service radius.

The result carries a reason so callers can tell apart:

- ``location_unverified``: the client address could not be geocoded.
- ``no_supply``: there are no approved PSWs with a usable location.
- ``out_of_range``: PSWs exist, but the nearest is beyond the radius.
- ``within_coverage``: the nearest PSW is within the radius (inclusive).

``check_coverage`` itself never writes anything.  ``CoverageService`` is the
caller-side wrapper that reads the current radius and provider list at call
time and records unserved requests.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Sequence, Union

from pswdirect.events.engineEvents import emit_unserved_request
from pswdirect.integrations.maps import geocoder
from pswdirect.integrations.maps.postalCodes import (
    FSA_REGEX,
    extract_fsa,
    is_valid_canadian_postal_code,
    lookup_fsa,
)
from pswdirect.schemas.geo import Coordinate, Provider
from pswdirect.services.geoService import distance_between

logger = logging.getLogger(__name__)

MSG_WITHIN_COVERAGE = "Great news! We have PSWs available in your area."
MSG_OUT_OF_RANGE = (
    "We are currently expanding! We haven't reached your area yet, "
    "but check back soon."
)
MSG_NO_SUPPLY = (
    "We are currently expanding! No caregivers are available yet, "
    "but check back soon."
)
MSG_LOCATION_UNVERIFIED = "Unable to verify your location. Please check your postal code."

CoordinateResolver = Callable[..., Awaitable[Optional[Coordinate]]]


class CoverageReason(str, enum.Enum):
    WITHIN_COVERAGE = "within_coverage"
    OUT_OF_RANGE = "out_of_range"
    NO_SUPPLY = "no_supply"
    LOCATION_UNVERIFIED = "location_unverified"


@dataclass(frozen=True)
class CoverageResult:
    within_coverage: bool
    reason: CoverageReason
    message: str
    active_radius_km: float
    closest_distance_km: Optional[float] = None
    nearest_provider_id: Optional[str] = None
    nearest_provider_city: Optional[str] = None
    providers_considered: int = 0
    client_coordinate: Optional[Coordinate] = None


@dataclass(frozen=True)
class UnservedRequest:
    """Record of a client address that could not be served."""
    city: Optional[str]
    fsa: Optional[str]
    postal_code: Optional[str]
    providers_found: int
    closest_distance_km: Optional[float]
    reason: str


class UnservedRequestSink(Protocol):
    async def record(self, request: UnservedRequest) -> None: ...


class ProviderSource(Protocol):
    async def list_approved(self) -> list[Provider]: ...


class RadiusSource(Protocol):
    async def get_active_radius(self) -> int: ...


# ---------------------------------------------------------------------------
# Location helpers
# ---------------------------------------------------------------------------

def _looks_like_postal_code(value: str) -> bool:
    compact = value.replace(" ", "")
    return is_valid_canadian_postal_code(compact) or bool(FSA_REGEX.match(compact))


def provider_coordinate(provider: Provider) -> Optional[Coordinate]:
    """A provider's resolved coordinate, else the local-table coordinate of
    their home postal code.  Never goes to the network."""
    if provider.coordinate is not None:
        return provider.coordinate
    hit = lookup_fsa(provider.home_postal_code)
    return hit[0] if hit else None


async def _resolve_client(
    client_location: Union[str, Coordinate],
    resolver: Optional[CoordinateResolver],
) -> Optional[Coordinate]:
    if isinstance(client_location, Coordinate):
        return client_location

    resolve = resolver or geocoder.resolve_coordinates
    text = (client_location or "").strip()
    if not text:
        return None
    if _looks_like_postal_code(text):
        return await resolve(postal_code=text)
    return await resolve(freeform_address=text)


# ---------------------------------------------------------------------------
# Coverage check
# ---------------------------------------------------------------------------

async def check_coverage(
    client_location: Union[str, Coordinate],
    providers: Sequence[Provider],
    active_radius_km: float,
    *,
    resolver: Optional[CoordinateResolver] = None,
) -> CoverageResult:
    """Check whether a client location is within reach of an approved PSW.

    Args:
        client_location: A known coordinate, a postal code/FSA, or a
            free-text address.
        providers: Candidate providers; non-approved ones are ignored.
        active_radius_km: Current service radius.
        resolver: Override for the geocoding call (defaults to the two-tier
            resolver).

    Returns:
        CoverageResult with the reason and the nearest provider, if any.
    """
    client = await _resolve_client(client_location, resolver)
    if client is None:
        logger.warning("Coverage check could not resolve client location %r", client_location)
        return CoverageResult(
            within_coverage=False,
            reason=CoverageReason.LOCATION_UNVERIFIED,
            message=MSG_LOCATION_UNVERIFIED,
            active_radius_km=active_radius_km,
        )

    nearest: Optional[Provider] = None
    nearest_km: Optional[float] = None
    considered = 0

    for provider in providers:
        if not provider.is_approved:
            continue
        location = provider_coordinate(provider)
        if location is None:
            continue
        considered += 1
        km = distance_between(client, location)
        if nearest_km is None or km < nearest_km:
            nearest, nearest_km = provider, km

    if nearest is None:
        logger.info("Coverage check: no approved providers with a location")
        return CoverageResult(
            within_coverage=False,
            reason=CoverageReason.NO_SUPPLY,
            message=MSG_NO_SUPPLY,
            active_radius_km=active_radius_km,
            client_coordinate=client,
        )

    within = nearest_km <= active_radius_km
    logger.debug(
        "Coverage check: nearest provider %s at %.2f km (radius %s km, %d considered)",
        nearest.id,
        nearest_km,
        active_radius_km,
        considered,
    )

    return CoverageResult(
        within_coverage=within,
        reason=CoverageReason.WITHIN_COVERAGE if within else CoverageReason.OUT_OF_RANGE,
        message=MSG_WITHIN_COVERAGE if within else MSG_OUT_OF_RANGE,
        active_radius_km=active_radius_km,
        closest_distance_km=nearest_km,
        nearest_provider_id=nearest.id,
        nearest_provider_city=nearest.home_city,
        providers_considered=considered,
        client_coordinate=client,
    )


def build_unserved_request(
    result: CoverageResult,
    city: Optional[str] = None,
    postal_code: Optional[str] = None,
) -> UnservedRequest:
    """The unserved-request record for a negative coverage result."""
    if result.within_coverage:
        raise ValueError("Cannot build an unserved request from a served location")

    distance = None
    if result.closest_distance_km is not None:
        distance = round(result.closest_distance_km, 2)

    return UnservedRequest(
        city=city,
        fsa=extract_fsa(postal_code),
        postal_code=postal_code,
        providers_found=result.providers_considered,
        closest_distance_km=distance,
        reason=result.reason.value,
    )


# ---------------------------------------------------------------------------
# Caller-side wrapper
# ---------------------------------------------------------------------------

class CoverageService:
    """Reads the live radius and provider list for every check and logs
    unserved requests."""

    def __init__(
        self,
        config: RadiusSource,
        directory: ProviderSource,
        unserved_sink: Optional[UnservedRequestSink] = None,
        *,
        resolver: Optional[CoordinateResolver] = None,
    ) -> None:
        self._config = config
        self._directory = directory
        self._unserved_sink = unserved_sink
        self._resolver = resolver

    async def check(
        self,
        client_location: Union[str, Coordinate],
        *,
        city: Optional[str] = None,
    ) -> CoverageResult:
        radius = await self._config.get_active_radius()
        providers = await self._directory.list_approved()
        result = await check_coverage(
            client_location, providers, radius, resolver=self._resolver
        )

        if not result.within_coverage:
            postal_code = client_location if isinstance(client_location, str) else None
            record = build_unserved_request(result, city, postal_code)
            emit_unserved_request(record.city, record.fsa, record.providers_found, record.reason)
            if self._unserved_sink is not None:
                await self._unserved_sink.record(record)

        return result
