"""
PSW Home Geocode Backfill -- Scheduled Job.

This module provides a job that:

1. Finds approved, non-test PSWs whose home coordinates are missing.
2. Geocodes each one from its postal code and city through Nominatim,
   one request at a time with a 1.1 s gap between requests.
3. Stores each coordinate as soon as it is resolved, so a run that is
   interrupted keeps everything it finished.

Rows with neither a postal code nor a city are skipped; rows that already
have coordinates are never touched.

Passing a PSW id limits the run to that one PSW (used right after approval);
test accounts are only excluded from the full sweep.

Usage with a simple cron runner::

    python -m pswdirect.jobs.geocodeBackfill
    python -m pswdirect.jobs.geocodeBackfill --psw-id <uuid>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pswdirect.integrations.maps.geocoder import BatchGeocodeResult, geocode_missing
from pswdirect.services.providerDirectory import SqlProviderDirectory

logger = logging.getLogger(__name__)


async def run_geocode_backfill(
    session_factory: async_sessionmaker[AsyncSession],
    delay_seconds: Optional[float] = None,
    provider_id: Optional[str] = None,
) -> BatchGeocodeResult:
    """Geocode approved PSWs that lack home coordinates.

    Args:
        session_factory: Session factory for the PSW profile table.
        delay_seconds: Override for the gap between remote calls.
        provider_id: Geocode only this PSW instead of sweeping everyone.

    Returns:
        BatchGeocodeResult with updated / skipped / failed counts.
    """
    directory = SqlProviderDirectory(session_factory)
    rows = await directory.list_missing_coordinates(provider_id)

    if provider_id is not None:
        logger.info("Starting geocode for PSW %s (%d pending)", provider_id, len(rows))
    else:
        logger.info("Starting geocode backfill for %d PSWs", len(rows))

    result = await geocode_missing(
        rows,
        directory.update_coordinates,
        delay_seconds=delay_seconds,
    )

    logger.info(
        "Geocode backfill completed. Updated: %d, skipped: %d, failed: %d.",
        result.updated,
        result.skipped,
        result.failed,
    )
    return result


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main(provider_id: Optional[str] = None) -> None:
    """Entry point for running the backfill from the command line."""
    from pswdirect.core.database import get_session_factory

    try:
        result = await run_geocode_backfill(get_session_factory(), provider_id=provider_id)
        print(  # noqa: T201
            f"Geocode backfill completed: {result.updated} updated, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
    except Exception:
        logger.exception("Geocode backfill failed")
        raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Geocode PSW home postal codes")
    parser.add_argument("--psw-id", help="geocode only this PSW")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(_cli_main(args.psw_id))
