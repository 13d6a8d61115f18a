"""
Geo Service
===========

Distance primitives shared by the coverage check and shift check-in.
Distances are great-circle (haversine) on a spherical Earth, which is well
within tolerance at the scale of a service radius. No state, no I/O.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence

from pswdirect.schemas.geo import Coordinate

# Mean Earth radius, km
EARTH_RADIUS_KM: float = 6371.0

# A PSW must be this close to the client address to check in
PSW_CHECKIN_PROXIMITY_METERS: float = 200.0


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Haversine distance in kilometres between two lat/lng pairs given in
    decimal degrees.  Symmetric, and zero for identical points.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    # Haversine formula
    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_between(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometres between two coordinates."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    return distance_between(a, b) * 1000.0


def format_distance(meters: float) -> str:
    """Human-readable distance: ``"850m"`` under a kilometre, else ``"1.2km"``."""
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"


@dataclass
class ProviderDistance:
    """A provider and its distance in km from the search centre."""

    provider: Any
    distance_km: float


def filter_by_radius(
    providers: Sequence[Any],
    center: Coordinate,
    radius_km: float,
) -> list[ProviderDistance]:
    """Filter providers to those within ``radius_km`` of ``center``.

    Providers are expected to expose a ``coordinate`` attribute; those
    without one are skipped.  The radius boundary is inclusive.

    Returns:
        Matches ordered nearest first.
    """
    results: list[ProviderDistance] = []
    for provider in providers:
        if provider.coordinate is None:
            continue

        distance = distance_between(center, provider.coordinate)
        if distance <= radius_km:
            results.append(ProviderDistance(provider=provider, distance_km=distance))

    results.sort(key=lambda match: match.distance_km)

    return results


@dataclass(frozen=True)
class ProximityCheck:
    """Outcome of a PSW check-in proximity test."""

    within_proximity: bool
    distance_meters: int
    message: str


def is_within_check_in_proximity(
    psw_location: Coordinate,
    client_location: Coordinate,
    threshold_meters: float = PSW_CHECKIN_PROXIMITY_METERS,
) -> ProximityCheck:
    """Check whether a PSW is close enough to the client address to check in."""
    distance = distance_meters(psw_location, client_location)

    if distance > threshold_meters:
        return ProximityCheck(
            within_proximity=False,
            distance_meters=round(distance),
            message=(
                "You must be at the client's location to check in. If you are "
                "having GPS issues, contact the office."
            ),
        )

    return ProximityCheck(
        within_proximity=True,
        distance_meters=round(distance),
        message="Location verified. You can check in.",
    )
