"""
Persistence for unserved-request records produced by the coverage check.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pswdirect.models.unserved import UnservedOrder
from pswdirect.services.coverageService import UnservedRequest

logger = logging.getLogger(__name__)


class InMemoryUnservedRequestRepository:
    def __init__(self) -> None:
        self.records: list[UnservedRequest] = []

    async def record(self, request: UnservedRequest) -> None:
        self.records.append(request)


class SqlUnservedRequestRepository:
    """Appends to ``unserved_orders``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(self, request: UnservedRequest) -> None:
        row = UnservedOrder(
            city=request.city,
            fsa=request.fsa,
            postal_code=request.postal_code,
            providers_found=request.providers_found,
            closest_distance_km=(
                Decimal(str(request.closest_distance_km))
                if request.closest_distance_km is not None
                else None
            ),
            reason=request.reason,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        logger.info("Recorded unserved request (fsa=%s, reason=%s)", request.fsa, request.reason)
