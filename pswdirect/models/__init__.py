"""
PSW Direct SQLAlchemy Models
============================

Central import point for the ORM models used by the persistence adapters.

Usage::

    from pswdirect.models import Base, AppSetting, PSWProfile
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# -- Settings --
from .settings import AppSetting

# -- Surge rules --
from .surge import SurgeScheduleRule

# -- Providers --
from .provider import PSWProfile, VettingStatus

# -- Unserved requests --
from .unserved import UnservedOrder

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "AppSetting",
    "SurgeScheduleRule",
    "PSWProfile",
    "VettingStatus",
    "UnservedOrder",
]
