"""
SQLAlchemy model for psw_profiles (only the columns the engine reads).
"""

import enum
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Enum, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class VettingStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEACTIVATED = "deactivated"


class PSWProfile(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "psw_profiles"

    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    vetting_status: Mapped[VettingStatus] = mapped_column(
        Enum(
            VettingStatus,
            name="vetting_status",
            create_type=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        server_default="pending",
    )
    is_test: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Home base location
    home_postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    home_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    home_lat: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    home_lng: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PSWProfile(id={self.id}, status={self.vetting_status}, "
            f"postal={self.home_postal_code})>"
        )
