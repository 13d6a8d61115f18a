"""
Provider Directory
==================

Read access to approved PSWs for the coverage check, plus the two
operations the geocode backfill job needs: listing approved PSWs without
coordinates (all of them, or one by id) and writing coordinates back one
row at a time.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional, Protocol, Sequence

from pydantic import ValidationError
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pswdirect.integrations.maps.geocoder import GeocodeRow
from pswdirect.models.provider import PSWProfile, VettingStatus
from pswdirect.schemas.geo import ApprovalStatus, Coordinate, Provider

logger = logging.getLogger(__name__)


class ProviderDirectory(Protocol):
    async def list_approved(self) -> list[Provider]: ...


class InMemoryProviderDirectory:
    def __init__(self, providers: Sequence[Provider] = ()) -> None:
        self._providers = list(providers)

    async def list_approved(self) -> list[Provider]:
        return [p for p in self._providers if p.is_approved]


def provider_from_row(row: PSWProfile) -> Provider:
    """Build a ``Provider`` from a profile row.

    A stored coordinate outside the valid ranges is treated as missing.
    """
    coordinate: Optional[Coordinate] = None
    if row.home_lat is not None and row.home_lng is not None:
        try:
            coordinate = Coordinate(latitude=float(row.home_lat), longitude=float(row.home_lng))
        except ValidationError:
            logger.warning(
                "Ignoring invalid coordinates for PSW %s: (%s, %s)",
                row.id,
                row.home_lat,
                row.home_lng,
            )

    return Provider(
        id=str(row.id),
        approval_status=ApprovalStatus(row.vetting_status.value),
        coordinate=coordinate,
        home_postal_code=row.home_postal_code,
        home_city=row.home_city,
    )


class SqlProviderDirectory:
    """``psw_profiles`` table directory.  Test accounts are excluded."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_approved(self) -> list[Provider]:
        stmt = select(PSWProfile).where(
            and_(
                PSWProfile.vetting_status == VettingStatus.APPROVED,
                PSWProfile.is_test.is_(False),
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [provider_from_row(row) for row in rows]

    async def list_missing_coordinates(
        self, provider_id: Optional[str] = None
    ) -> list[GeocodeRow]:
        """Approved PSWs lacking a home coordinate.

        A full sweep excludes test accounts.  With ``provider_id`` only that
        PSW is considered, test account or not, so a newly approved PSW can
        be geocoded straight away.
        """
        conditions = [
            PSWProfile.vetting_status == VettingStatus.APPROVED,
            or_(PSWProfile.home_lat.is_(None), PSWProfile.home_lng.is_(None)),
        ]
        if provider_id is None:
            conditions.append(PSWProfile.is_test.is_(False))
        else:
            try:
                conditions.append(PSWProfile.id == uuid.UUID(provider_id))
            except ValueError:
                logger.warning("Ignoring malformed PSW id %r", provider_id)
                return []

        stmt = select(PSWProfile).where(and_(*conditions))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [
            GeocodeRow(
                id=str(row.id),
                postal_code=row.home_postal_code,
                city=row.home_city,
            )
            for row in rows
        ]

    async def update_coordinates(self, provider_id: str, coordinate: Coordinate) -> None:
        """Write one PSW's home coordinate and commit immediately.

        Rows that already have a coordinate are left untouched.
        """
        stmt = (
            update(PSWProfile)
            .where(
                and_(
                    PSWProfile.id == uuid.UUID(provider_id),
                    or_(PSWProfile.home_lat.is_(None), PSWProfile.home_lng.is_(None)),
                )
            )
            .values(
                home_lat=Decimal(str(round(coordinate.latitude, 7))),
                home_lng=Decimal(str(round(coordinate.longitude, 7))),
            )
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

        logger.debug("Stored coordinates for PSW %s", provider_id)
