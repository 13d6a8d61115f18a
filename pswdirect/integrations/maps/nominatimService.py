"""
Nominatim API wrapper service
=============================

Async wrapper around the OpenStreetMap Nominatim ``/search`` endpoint used
as the remote geocoding tier.

All HTTP calls use httpx with retry logic (3 attempts, exponential backoff).
Nominatim's usage policy requires an identifying User-Agent and at most one
request per second.  Callers that issue many requests pass a
``RequestThrottle``; it gates every HTTP attempt, retries included.
"""

from __future__ import annotations

import asyncio
import logging
from time import monotonic
from typing import Any, Optional

import httpx

from pswdirect.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_MAX_RETRIES = 3
_INITIAL_BACKOFF_SECONDS = 0.5  # doubles each retry: 0.5, 1.0, 2.0
_REQUEST_TIMEOUT_SECONDS = 10.0


# ---------------------------------------------------------------------------
# Custom exception
# ---------------------------------------------------------------------------


class GeocodingError(Exception):
    """Raised when a Nominatim request fails after all retries or
    returns an error status."""

    def __init__(
        self, message: str, status: str | None = None, raw: Any = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.raw = raw


# ---------------------------------------------------------------------------
# Throttle
# ---------------------------------------------------------------------------


class RequestThrottle:
    """Minimum gap between the end of one request and the start of the next.

    One instance is shared by every request of a batch run.
    """

    def __init__(self, min_interval: float) -> None:
        self.min_interval = min_interval
        self._last_finished: float | None = None

    async def wait(self) -> None:
        if self._last_finished is None:
            return
        remaining = self.min_interval - (monotonic() - self._last_finished)
        if remaining > 0:
            await asyncio.sleep(remaining)

    def mark(self) -> None:
        self._last_finished = monotonic()


# ---------------------------------------------------------------------------
# Internal HTTP helpers
# ---------------------------------------------------------------------------


async def _request_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    throttle: RequestThrottle | None = None,
) -> Any:
    """GET ``url`` with exponential-backoff retry logic.

    Retries on transient HTTP errors (5xx, timeouts, connection errors).
    Does *not* retry on 4xx -- those are surfaced immediately.  With a
    ``throttle``, every attempt waits for its slot, so backoff never
    shortens the gap between requests.

    Returns:
        Parsed JSON response.

    Raises:
        GeocodingError: After all retries are exhausted or on a 4xx.
    """
    last_exception: Exception | None = None
    backoff = _INITIAL_BACKOFF_SECONDS

    for attempt in range(1, _MAX_RETRIES + 1):
        try:
            if throttle is not None:
                await throttle.wait()
            try:
                response = await client.get(
                    url, params=params, timeout=_REQUEST_TIMEOUT_SECONDS
                )
            finally:
                if throttle is not None:
                    throttle.mark()

            if 400 <= response.status_code < 500:
                raise GeocodingError(
                    f"Nominatim client error: HTTP {response.status_code}",
                    status=str(response.status_code),
                    raw=response.text,
                )

            if response.status_code >= 500:
                last_exception = GeocodingError(
                    f"Nominatim server error: HTTP {response.status_code}",
                    status=str(response.status_code),
                    raw=response.text,
                )
                logger.warning(
                    "Nominatim server error on attempt %d/%d: HTTP %d",
                    attempt,
                    _MAX_RETRIES,
                    response.status_code,
                )
                if attempt < _MAX_RETRIES:
                    await asyncio.sleep(backoff)
                    backoff *= 2
                continue

            return response.json()

        except (httpx.TimeoutException, httpx.ConnectError) as exc:
            last_exception = exc
            logger.warning(
                "Nominatim transport error on attempt %d/%d: %s",
                attempt,
                _MAX_RETRIES,
                exc,
            )
            if attempt < _MAX_RETRIES:
                await asyncio.sleep(backoff)
                backoff *= 2

    raise GeocodingError(
        f"Nominatim request failed after {_MAX_RETRIES} attempts",
        raw=str(last_exception),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def search(
    query: str,
    *,
    client: httpx.AsyncClient | None = None,
    throttle: RequestThrottle | None = None,
) -> Optional[dict[str, Any]]:
    """Forward-geocode a free-text query.

    Args:
        query: Search string, e.g. ``"K8N 1A1, Belleville, Ontario, Canada"``.
        client: Optional shared client (batch runs reuse one connection).
        throttle: Optional pacing shared across calls.

    Returns:
        Dict with keys lat, lng and display_name, or None when Nominatim
        has no match.

    Raises:
        GeocodingError: On API failure.
    """
    params = {
        "format": "json",
        "q": query,
        "limit": 1,
        "countrycodes": settings.nominatim_country_codes,
    }
    url = f"{settings.nominatim_base_url.rstrip('/')}/search"

    if client is None:
        async with httpx.AsyncClient(
            headers={"User-Agent": settings.nominatim_user_agent}
        ) as own_client:
            data = await _request_with_retry(
                own_client, url, params=params, throttle=throttle
            )
    else:
        data = await _request_with_retry(client, url, params=params, throttle=throttle)

    if not data:
        return None

    first = data[0]
    try:
        return {
            "lat": float(first["lat"]),
            "lng": float(first["lon"]),
            "display_name": first.get("display_name", query),
        }
    except (KeyError, TypeError, ValueError) as exc:
        raise GeocodingError("Malformed Nominatim result", raw=first) from exc
