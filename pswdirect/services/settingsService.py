"""
Engine Settings Service
=======================

Typed access to the administrator-editable engine configuration held in the
key/value settings store:

    asap_pricing_enabled     "true" / "false"
    asap_multiplier          decimal string, >= 1
    asap_lead_time_minutes   integer string, >= 0
    active_service_radius    integer string, km, bounded and snapped

Writers validate and normalise before storing; readers parse whatever is
stored and fall back to the configured defaults (with a warning) when a
value is missing or malformed.  Nothing is cached by the readers, so every
price or coverage computation sees the current value.

``SettingsWatcher`` keeps a local view of a set of keys current, driven by
the store's change notifications with a polling fallback for when the
notification channel goes quiet.
"""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Iterable, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pswdirect.core.config import settings
from pswdirect.events.engineEvents import emit_setting_changed
from pswdirect.models.settings import AppSetting
from pswdirect.schemas.geo import ServiceAreaSetting
from pswdirect.schemas.pricing import RushPolicy

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

ASAP_PRICING_ENABLED = "asap_pricing_enabled"
ASAP_MULTIPLIER = "asap_multiplier"
ASAP_LEAD_TIME_MINUTES = "asap_lead_time_minutes"
ACTIVE_SERVICE_RADIUS = "active_service_radius"

ENGINE_SETTING_KEYS = (
    ASAP_PRICING_ENABLED,
    ASAP_MULTIPLIER,
    ASAP_LEAD_TIME_MINUTES,
    ACTIVE_SERVICE_RADIUS,
)

ChangeCallback = Callable[[str, Optional[str]], None]
Unsubscribe = Callable[[], None]


class ConfigurationError(ValueError):
    """Raised when an administrator tries to store an invalid setting."""


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class SettingsStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> bool: ...

    def subscribe(self, callback: ChangeCallback) -> Unsubscribe: ...


class _SubscriberMixin:
    """Local change-notification fan-out shared by the stores."""

    def __init__(self) -> None:
        self._subscribers: list[ChangeCallback] = []

    def subscribe(self, callback: ChangeCallback) -> Unsubscribe:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, key: str, value: Optional[str]) -> None:
        for callback in list(self._subscribers):
            try:
                callback(key, value)
            except Exception:
                logger.exception("Settings subscriber failed for key %s", key)


class InMemorySettingsStore(_SubscriberMixin):
    """Dictionary-backed store, used in tests and local tooling."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        super().__init__()
        self._values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._values[key] = value
        self._notify(key, value)
        return True


class SqlSettingsStore(_SubscriberMixin):
    """``app_settings`` table store.  Last write wins."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__()
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AppSetting.setting_value).where(AppSetting.setting_key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> bool:
        stmt = pg_insert(AppSetting).values(setting_key=key, setting_value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=[AppSetting.setting_key],
            set_={"setting_value": value, "updated_at": func.now()},
        )
        async with self._session_factory() as session:
            try:
                await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                logger.error("Failed to store setting %s", key, exc_info=True)
                return False

        self._notify(key, value)
        return True


# ---------------------------------------------------------------------------
# Radius helpers
# ---------------------------------------------------------------------------

def radius_options() -> list[int]:
    """Selectable service radii, e.g. [5, 10, ..., 75]."""
    return list(
        range(
            settings.service_radius_min_km,
            settings.service_radius_max_km + 1,
            settings.service_radius_increment_km,
        )
    )


def snap_radius(radius_km: float) -> int:
    """Validate a requested radius and round it to the nearest increment.

    Raises:
        ConfigurationError: If the radius is outside the configured bounds.
    """
    low, high = settings.service_radius_min_km, settings.service_radius_max_km
    try:
        value = Decimal(str(radius_km))
    except InvalidOperation as exc:
        raise ConfigurationError(f"Invalid radius: {radius_km!r}") from exc
    if not value.is_finite() or value < low or value > high:
        raise ConfigurationError(
            f"Radius must be between {low} and {high} km, got {radius_km}"
        )

    step = settings.service_radius_increment_km
    steps = (value / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(steps) * step


# ---------------------------------------------------------------------------
# Typed engine configuration
# ---------------------------------------------------------------------------

class EngineConfigService:
    """Validated readers and writers for the engine's settings keys."""

    def __init__(self, store: SettingsStore) -> None:
        self._store = store

    # -- Readers --

    async def get_rush_policy(self) -> RushPolicy:
        enabled_raw = await self._store.get(ASAP_PRICING_ENABLED)
        multiplier_raw = await self._store.get(ASAP_MULTIPLIER)
        lead_raw = await self._store.get(ASAP_LEAD_TIME_MINUTES)

        return RushPolicy(
            enabled=self._parse_bool(ASAP_PRICING_ENABLED, enabled_raw, settings.asap_default_enabled),
            multiplier=self._parse_multiplier(multiplier_raw),
            lead_time_minutes=self._parse_lead_time(lead_raw),
        )

    async def get_active_radius(self) -> int:
        raw = await self._store.get(ACTIVE_SERVICE_RADIUS)
        default = settings.service_radius_default_km
        if raw is None:
            return default
        try:
            radius = int(raw)
        except (TypeError, ValueError):
            logger.warning("Invalid %s value %r; using %d km", ACTIVE_SERVICE_RADIUS, raw, default)
            return default
        if not settings.service_radius_min_km <= radius <= settings.service_radius_max_km:
            logger.warning("Out-of-bounds %s value %r; using %d km", ACTIVE_SERVICE_RADIUS, raw, default)
            return default
        return radius

    async def get_service_area(self) -> ServiceAreaSetting:
        return ServiceAreaSetting(active_radius_km=await self.get_active_radius())

    # -- Writers --

    async def set_rush_enabled(self, enabled: bool) -> bool:
        return await self._write(ASAP_PRICING_ENABLED, "true" if enabled else "false")

    async def set_rush_multiplier(self, multiplier: Decimal | float | str) -> bool:
        try:
            value = Decimal(str(multiplier))
        except InvalidOperation as exc:
            raise ConfigurationError(f"Invalid rush multiplier: {multiplier!r}") from exc
        if not value.is_finite() or value < 1:
            raise ConfigurationError(f"Rush multiplier must be at least 1, got {multiplier}")
        return await self._write(ASAP_MULTIPLIER, str(value))

    async def set_rush_lead_time(self, minutes: int) -> bool:
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
            raise ConfigurationError(
                f"Lead time must be a non-negative whole number of minutes, got {minutes!r}"
            )
        return await self._write(ASAP_LEAD_TIME_MINUTES, str(minutes))

    async def set_active_radius(self, radius_km: float) -> bool:
        snapped = snap_radius(radius_km)
        stored = await self._write(ACTIVE_SERVICE_RADIUS, str(snapped))
        if stored:
            logger.info("Active service radius set to %d km", snapped)
        return stored

    # -- Internals --

    async def _write(self, key: str, value: str) -> bool:
        old_value = await self._store.get(key)
        stored = await self._store.set(key, value)
        if stored:
            emit_setting_changed(key, old_value, value)
        else:
            logger.error("Settings store rejected write of %s", key)
        return stored

    @staticmethod
    def _parse_bool(key: str, raw: Optional[str], default: bool) -> bool:
        if raw is None:
            return default
        normalised = raw.strip().lower()
        if normalised == "true":
            return True
        if normalised == "false":
            return False
        logger.warning("Invalid %s value %r; using %s", key, raw, default)
        return default

    @staticmethod
    def _parse_multiplier(raw: Optional[str]) -> Decimal:
        default = settings.asap_default_multiplier
        if raw is None:
            return default
        try:
            value = Decimal(raw.strip())
        except (InvalidOperation, AttributeError):
            value = None
        if value is None or not value.is_finite() or value < 1:
            logger.warning("Invalid %s value %r; using %s", ASAP_MULTIPLIER, raw, default)
            return default
        return value

    @staticmethod
    def _parse_lead_time(raw: Optional[str]) -> int:
        default = settings.asap_default_lead_time_minutes
        if raw is None:
            return default
        try:
            value = int(raw)
        except (TypeError, ValueError):
            value = -1
        if value < 0:
            logger.warning("Invalid %s value %r; using %d", ASAP_LEAD_TIME_MINUTES, raw, default)
            return default
        return value


# ---------------------------------------------------------------------------
# Change watcher
# ---------------------------------------------------------------------------

class SettingsWatcher:
    """Keeps a local copy of ``keys`` in step with the store.

    Push notifications from the store update the copy immediately.  A
    background task wakes every ``poll_interval`` seconds and, if no
    notification has arrived for ``stale_after`` seconds, re-reads every
    watched key.  ``on_change`` fires only when a value actually changes.
    """

    def __init__(
        self,
        store: SettingsStore,
        on_change: ChangeCallback,
        keys: Iterable[str] = ENGINE_SETTING_KEYS,
        *,
        poll_interval: float | None = None,
        stale_after: float | None = None,
    ) -> None:
        self._store = store
        self._on_change = on_change
        self._keys = tuple(keys)
        self._poll_interval = (
            settings.settings_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self._stale_after = (
            settings.settings_stale_after_seconds if stale_after is None else stale_after
        )
        self._values: dict[str, Optional[str]] = {}
        self._last_notification = time.monotonic()
        self._unsubscribe: Optional[Unsubscribe] = None
        self._task: Optional[asyncio.Task[None]] = None

    def current(self, key: str) -> Optional[str]:
        return self._values.get(key)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Prime the local copy, subscribe, and start the polling fallback."""
        for key in self._keys:
            self._values[key] = await self._store.get(key)
        self._last_notification = time.monotonic()
        self._unsubscribe = self._store.subscribe(self._handle_notification)
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("Settings watcher started for %d keys", len(self._keys))

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Settings watcher stopped")

    async def refresh(self) -> list[str]:
        """Re-read every watched key; returns the keys that changed."""
        changed: list[str] = []
        for key in self._keys:
            value = await self._store.get(key)
            if self._apply(key, value):
                changed.append(key)
        self._last_notification = time.monotonic()
        return changed

    def _handle_notification(self, key: str, value: Optional[str]) -> None:
        self._last_notification = time.monotonic()
        if key in self._keys:
            self._apply(key, value)

    def _apply(self, key: str, value: Optional[str]) -> bool:
        if key in self._values and self._values[key] == value:
            return False
        self._values[key] = value
        try:
            self._on_change(key, value)
        except Exception:
            logger.exception("Settings change callback failed for key %s", key)
        return True

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            quiet_for = time.monotonic() - self._last_notification
            if quiet_for < self._stale_after:
                continue
            logger.warning(
                "No settings notifications for %.0f s; re-reading %d keys",
                quiet_for,
                len(self._keys),
            )
            try:
                await self.refresh()
            except Exception:
                logger.exception("Settings refresh failed; will retry next poll")
