"""
Stripe Integration Module
=========================

Usage::

    from pswdirect.integrations.stripe import (
        ChargeResult,
        StripeChargeSink,
    )
"""

from .chargeService import (
    ChargeErrorKind,
    ChargeResult,
    ChargeSink,
    PaymentError,
    StripeChargeSink,
)

__all__ = [
    "ChargeErrorKind",
    "ChargeResult",
    "ChargeSink",
    "PaymentError",
    "StripeChargeSink",
]
