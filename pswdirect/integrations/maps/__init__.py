"""
Maps & Location integration package
===================================

Public API for postal-code handling and two-tier geocoding.

Typical usage::

    from pswdirect.integrations.maps import (
        resolve_coordinates,
        geocode_missing,
        GeocodeRow,
        is_valid_canadian_postal_code,
    )
"""

from pswdirect.integrations.maps.geocoder import (
    BatchGeocodeResult,
    GeocodeRow,
    GeocodingResult,
    clear_geocoding_cache,
    compose_search_query,
    geocode_missing,
    resolve_coordinates,
    resolve_local,
    resolve_location,
    resolve_remote,
)
from pswdirect.integrations.maps.nominatimService import GeocodingError, RequestThrottle, search
from pswdirect.integrations.maps.postalCodes import (
    extract_fsa,
    format_postal_code,
    is_valid_canadian_postal_code,
    lookup_fsa,
)

__all__ = [
    # nominatimService
    "GeocodingError",
    "RequestThrottle",
    "search",
    # postalCodes
    "extract_fsa",
    "format_postal_code",
    "is_valid_canadian_postal_code",
    "lookup_fsa",
    # geocoder
    "BatchGeocodeResult",
    "GeocodeRow",
    "GeocodingResult",
    "clear_geocoding_cache",
    "compose_search_query",
    "geocode_missing",
    "resolve_coordinates",
    "resolve_local",
    "resolve_location",
    "resolve_remote",
]
