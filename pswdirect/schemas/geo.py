"""
Pydantic v2 schemas for coordinates, providers and the service area.
"""

from __future__ import annotations

import enum
import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Coordinate(BaseModel):
    """A latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    @field_validator("latitude", "longitude")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate components must be finite")
        return value

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEACTIVATED = "deactivated"


class Provider(BaseModel):
    """A personal support worker as seen by the coverage check.

    ``coordinate`` is the resolved home location; when it is missing the
    coverage check falls back to the home postal code.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    coordinate: Optional[Coordinate] = None
    home_postal_code: Optional[str] = None
    home_city: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED


class ServiceAreaSetting(BaseModel):
    """The global active coverage radius, already bounded and snapped."""

    model_config = ConfigDict(frozen=True)

    active_radius_km: int = Field(ge=1)
