"""
SQLAlchemy model for unserved_orders, the log of addresses that could not be
served.  Rows are append-only.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class UnservedOrder(Base):
    __tablename__ = "unserved_orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    fsa: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    providers_found: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0"
    )
    closest_distance_km: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(8, 2), nullable=True
    )
    reason: Mapped[str] = mapped_column(String(50), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<UnservedOrder(id={self.id}, fsa={self.fsa}, reason={self.reason})>"
