"""
Stripe Charge Service
=====================

Charge-execution sink used by overtime billing.  Given an amount it captures
the money off-session against the client's saved card and reports either a
reference id or a distinct error kind.

- The payer is identified by email; the first Stripe customer with that
  email and its first saved card are used.
- Dry-run mode computes everything and returns a simulated result without
  calling Stripe.

Amounts are passed in as ``Decimal`` major units and sent to Stripe as
integer cents.  The Stripe key is read from ``STRIPE_SECRET_KEY``.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol

import stripe

from pswdirect.core.config import settings
from pswdirect.services.money import to_cents

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Stripe SDK configuration
# ---------------------------------------------------------------------------

stripe.api_key = settings.stripe_secret_key
stripe.api_version = settings.stripe_api_version


# ---------------------------------------------------------------------------
# Custom exception
# ---------------------------------------------------------------------------

class PaymentError(Exception):
    """Raised when a Stripe payment operation fails.

    Attributes:
        message: Human-readable error description.
        stripe_error_code: The Stripe error code, if available.
        decline_code: The decline code from the card issuer, if available.
    """

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        decline_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stripe_error_code = stripe_error_code
        self.decline_code = decline_code

    def __repr__(self) -> str:
        return (
            f"PaymentError(message={self.message!r}, "
            f"code={self.stripe_error_code!r}, "
            f"decline_code={self.decline_code!r})"
        )


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class ChargeErrorKind(str, enum.Enum):
    NO_PAYMENT_METHOD = "no_payment_method"
    CARD_DECLINED = "card_declined"
    CAPTURE_FAILED = "capture_failed"


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of a charge attempt."""
    success: bool
    reference_id: Optional[str] = None
    error_kind: Optional[ChargeErrorKind] = None
    message: str = ""
    is_dry_run: bool = False


class ChargeSink(Protocol):
    """Anything that can capture money against a payer."""

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payer_ref: str,
        metadata: dict[str, str],
    ) -> ChargeResult: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _handle_stripe_error(exc: stripe.StripeError) -> PaymentError:
    """Convert a Stripe SDK exception into a PaymentError."""
    code = getattr(exc, "code", None)
    decline_code = getattr(exc, "decline_code", None)
    error_body = getattr(exc, "error", None)
    if error_body is not None:
        code = code or getattr(error_body, "code", None)
        decline_code = decline_code or getattr(error_body, "decline_code", None)

    logger.error(
        "Stripe API error: %s (code=%s, decline_code=%s)",
        str(exc),
        code,
        decline_code,
    )

    return PaymentError(
        message=str(exc),
        stripe_error_code=code,
        decline_code=decline_code,
    )


# ---------------------------------------------------------------------------
# Stripe sink
# ---------------------------------------------------------------------------

class StripeChargeSink:
    """Off-session card capture through Stripe PaymentIntents."""

    def __init__(self, dry_run: bool | None = None) -> None:
        self.dry_run = settings.overtime_dry_run if dry_run is None else dry_run

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payer_ref: str,
        metadata: dict[str, str],
    ) -> ChargeResult:
        """Capture ``amount`` from the customer whose email is ``payer_ref``.

        Raises:
            ValueError: If amount is not positive.
        """
        amount_cents = to_cents(amount)
        if amount_cents <= 0:
            raise ValueError(f"Charge amount must be positive, got {amount}")

        if self.dry_run:
            reference = f"dryrun_{uuid.uuid4().hex[:16]}"
            logger.info(
                "DRY RUN: would charge %s %s to %s (ref=%s)",
                amount,
                currency.upper(),
                payer_ref,
                reference,
            )
            return ChargeResult(
                success=True,
                reference_id=reference,
                message=f"Dry run: would charge ${amount:.2f}",
                is_dry_run=True,
            )

        try:
            customer_id = self._find_customer(payer_ref)
            if customer_id is None:
                return ChargeResult(
                    success=False,
                    error_kind=ChargeErrorKind.NO_PAYMENT_METHOD,
                    message="No payment method on file for this customer",
                )

            payment_method_id = self._find_card(customer_id)
            if payment_method_id is None:
                return ChargeResult(
                    success=False,
                    error_kind=ChargeErrorKind.NO_PAYMENT_METHOD,
                    message="No saved payment method found for customer",
                )

            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency.lower(),
                customer=customer_id,
                payment_method=payment_method_id,
                confirm=True,
                off_session=True,
                metadata=metadata,
                description=metadata.get("description", "PSW Direct charge"),
            )
        except stripe.CardError as exc:
            error = _handle_stripe_error(exc)
            return ChargeResult(
                success=False,
                error_kind=ChargeErrorKind.CARD_DECLINED,
                message=error.message,
            )
        except stripe.StripeError as exc:
            error = _handle_stripe_error(exc)
            return ChargeResult(
                success=False,
                error_kind=ChargeErrorKind.CAPTURE_FAILED,
                message=error.message,
            )

        if intent.status != "succeeded":
            logger.error(
                "PaymentIntent %s for %s ended in status %s",
                intent.id,
                payer_ref,
                intent.status,
            )
            return ChargeResult(
                success=False,
                reference_id=intent.id,
                error_kind=ChargeErrorKind.CAPTURE_FAILED,
                message=f"Payment not captured (status={intent.status})",
            )

        logger.info(
            "Charge captured: intent=%s, payer=%s, amount=%d %s",
            intent.id,
            payer_ref,
            amount_cents,
            currency,
        )
        return ChargeResult(success=True, reference_id=intent.id, message="Charged")

    @staticmethod
    def _find_customer(email: str) -> Optional[str]:
        customers: Any = stripe.Customer.list(email=email, limit=1)
        if not customers.data:
            return None
        return customers.data[0].id

    @staticmethod
    def _find_card(customer_id: str) -> Optional[str]:
        methods: Any = stripe.PaymentMethod.list(customer=customer_id, type="card", limit=1)
        if not methods.data:
            return None
        return methods.data[0].id
