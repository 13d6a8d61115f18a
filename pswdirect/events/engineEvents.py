"""
Engine Event Emitters
=====================

Events raised by the pricing & coverage engine for downstream consumers
(admin dashboards, analytics, audit).  Each emitter logs the event and
returns the payload dict so callers can forward it to whatever transport
they use.

Events emitted:
  - coverage.unserved_request
  - overtime.charged
  - overtime.charge_failed
  - settings.changed
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def _build_event(
    event_type: str,
    subject_id: str | None,
    *,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "event_type": event_type,
        "subject_id": subject_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


def emit_unserved_request(
    city: str | None,
    fsa: str | None,
    providers_found: int,
    reason: str,
) -> dict[str, Any]:
    """Emit event when a client address could not be served."""
    event = _build_event(
        "coverage.unserved_request",
        fsa,
        data={
            "city": city,
            "fsa": fsa,
            "providers_found": providers_found,
            "reason": reason,
        },
    )
    logger.info(
        "Event emitted: %s (fsa=%s, reason=%s)",
        event["event_type"],
        fsa,
        reason,
    )
    return event


def emit_overtime_charged(
    booking_id: str,
    billable_minutes: int,
    charge_amount: str,
    reference_id: str | None,
    is_dry_run: bool = False,
) -> dict[str, Any]:
    """Emit event when an overtime charge was captured (or simulated)."""
    event = _build_event(
        "overtime.charged",
        booking_id,
        data={
            "billable_minutes": billable_minutes,
            "charge_amount": charge_amount,
            "reference_id": reference_id,
            "is_dry_run": is_dry_run,
        },
    )
    logger.info(
        "Event emitted: %s for booking %s (%s)",
        event["event_type"],
        booking_id,
        charge_amount,
    )
    return event


def emit_overtime_charge_failed(
    booking_id: str,
    error_kind: str | None,
    message: str,
) -> dict[str, Any]:
    """Emit event when an overtime charge could not be captured."""
    event = _build_event(
        "overtime.charge_failed",
        booking_id,
        data={"error_kind": error_kind, "message": message},
    )
    logger.warning(
        "Event emitted: %s for booking %s (%s)",
        event["event_type"],
        booking_id,
        error_kind,
    )
    return event


def emit_setting_changed(key: str, old_value: str | None, new_value: str | None) -> dict[str, Any]:
    """Emit event when an engine setting changes."""
    event = _build_event(
        "settings.changed",
        key,
        data={"old_value": old_value, "new_value": new_value},
    )
    logger.info(
        "Event emitted: %s (%s: %s -> %s)",
        event["event_type"],
        key,
        old_value,
        new_value,
    )
    return event
