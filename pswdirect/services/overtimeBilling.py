"""
Overtime Billing Service
========================

Turns a completed shift's overtime into money movements:

1. Compute billable minutes and the client charge (``overtimeCalculator``).
2. Nothing to bill (grace period): report it, charge nothing.
3. Dry run: report the simulated charge; ledgers are never touched.
4. Otherwise capture through the charge sink.  Only after a confirmed
   capture is the booking total adjusted and the PSW's overtime pay (from the
   payout rate table, not the client rate) forwarded to payroll.

A failed capture (no card on file, decline, capture error) leaves the booking
uncharged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from pswdirect.core.config import settings
from pswdirect.events.engineEvents import (
    emit_overtime_charge_failed,
    emit_overtime_charged,
)
from pswdirect.integrations.stripe.chargeService import (
    ChargeErrorKind,
    ChargeSink,
)
from pswdirect.services.overtimeCalculator import (
    compute_overtime_charge,
    compute_provider_overtime_pay,
    provider_payout_rate,
)

logger = logging.getLogger(__name__)


class BookingLedger(Protocol):
    """Booking store side of a captured overtime charge."""

    async def apply_overtime_charge(
        self,
        booking_id: str,
        amount: Decimal,
        reference_id: str,
    ) -> None: ...


class PayrollLedger(Protocol):
    """Payroll store side of a captured overtime charge."""

    async def add_overtime_pay(
        self,
        shift_id: str,
        billable_minutes: int,
        amount: Decimal,
    ) -> None: ...


@dataclass(frozen=True)
class OvertimeRequest:
    booking_id: str
    shift_id: str
    customer_email: str
    overtime_minutes: int
    hourly_rate: Decimal
    psw_id: str = ""
    psw_name: str = ""
    client_name: str = ""


@dataclass(frozen=True)
class OvertimeBillingResult:
    """What happened to an overtime event."""
    charged: bool
    overtime_minutes: int
    billable_minutes: int
    charge_amount: Decimal
    provider_overtime_pay: Decimal
    message: str
    is_dry_run: bool = False
    reference_id: Optional[str] = None
    error_kind: Optional[ChargeErrorKind] = None


async def bill_overtime(
    request: OvertimeRequest,
    sink: ChargeSink,
    booking_ledger: BookingLedger,
    payroll_ledger: PayrollLedger,
    *,
    dry_run: bool = False,
    currency: str | None = None,
) -> OvertimeBillingResult:
    """Charge the client for overtime and credit the PSW.

    Args:
        request: The overtime event for one shift.
        sink: Charge-execution sink (Stripe in production).
        booking_ledger: Updated only after a confirmed capture.
        payroll_ledger: Credited only after a confirmed capture.
        dry_run: Simulate the charge without touching the sink or ledgers.
        currency: ISO currency code (defaults to the configured currency).

    Returns:
        OvertimeBillingResult describing the outcome.
    """
    charge = compute_overtime_charge(request.overtime_minutes, request.hourly_rate)
    payout_rate = provider_payout_rate(request.hourly_rate)
    provider_pay = compute_provider_overtime_pay(charge.billable_minutes, payout_rate)

    logger.info(
        "Overtime for booking %s shift %s: %d min -> %d billable, %s",
        request.booking_id,
        request.shift_id,
        request.overtime_minutes,
        charge.billable_minutes,
        charge.charge_amount,
    )

    if not charge.is_chargeable:
        return OvertimeBillingResult(
            charged=False,
            overtime_minutes=request.overtime_minutes,
            billable_minutes=0,
            charge_amount=Decimal("0.00"),
            provider_overtime_pay=Decimal("0.00"),
            message="Within 14-minute grace period - no charge applied",
        )

    if dry_run:
        emit_overtime_charged(
            request.booking_id,
            charge.billable_minutes,
            str(charge.charge_amount),
            None,
            is_dry_run=True,
        )
        return OvertimeBillingResult(
            charged=False,
            overtime_minutes=request.overtime_minutes,
            billable_minutes=charge.billable_minutes,
            charge_amount=charge.charge_amount,
            provider_overtime_pay=provider_pay,
            message=(
                f"Dry run: would charge ${charge.charge_amount:.2f} "
                f"for {charge.description}"
            ),
            is_dry_run=True,
        )

    result = await sink.charge(
        charge.charge_amount,
        currency or settings.currency,
        request.customer_email,
        {
            "booking_id": request.booking_id,
            "shift_id": request.shift_id,
            "type": "overtime_charge",
            "overtime_minutes": str(request.overtime_minutes),
            "billable_minutes": str(charge.billable_minutes),
            "client_name": request.client_name,
            "psw_name": request.psw_name,
            "description": (
                f"PSW Direct - Overtime Charge ({charge.description}) - "
                f"Booking {request.booking_id}"
            ),
        },
    )

    if not result.success or result.is_dry_run:
        if result.is_dry_run:
            message = result.message or "Simulated charge"
        else:
            message = result.message or "Overtime charge failed"
            emit_overtime_charge_failed(
                request.booking_id,
                result.error_kind.value if result.error_kind else None,
                message,
            )
        return OvertimeBillingResult(
            charged=False,
            overtime_minutes=request.overtime_minutes,
            billable_minutes=charge.billable_minutes,
            charge_amount=charge.charge_amount,
            provider_overtime_pay=provider_pay,
            message=message,
            is_dry_run=result.is_dry_run,
            reference_id=result.reference_id,
            error_kind=result.error_kind,
        )

    await booking_ledger.apply_overtime_charge(
        request.booking_id, charge.charge_amount, result.reference_id or ""
    )
    await payroll_ledger.add_overtime_pay(
        request.shift_id, charge.billable_minutes, provider_pay
    )
    emit_overtime_charged(
        request.booking_id,
        charge.billable_minutes,
        str(charge.charge_amount),
        result.reference_id,
    )

    return OvertimeBillingResult(
        charged=True,
        overtime_minutes=request.overtime_minutes,
        billable_minutes=charge.billable_minutes,
        charge_amount=charge.charge_amount,
        provider_overtime_pay=provider_pay,
        message=f"Charged ${charge.charge_amount:.2f} for {charge.description}",
        reference_id=result.reference_id,
    )
