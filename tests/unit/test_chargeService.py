"""
Unit tests for the Stripe charge sink.

The Stripe SDK is mocked at the module level; no network calls are made.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from pswdirect.integrations.stripe.chargeService import ChargeErrorKind, StripeChargeSink


class _CardError(Exception):
    code = "card_declined"
    decline_code = "insufficient_funds"


@pytest.fixture
def mock_stripe():
    with patch("pswdirect.integrations.stripe.chargeService.stripe") as mock_stripe_mod:
        mock_stripe_mod.Customer.list.return_value = MagicMock(data=[MagicMock(id="cus_1")])
        mock_stripe_mod.PaymentMethod.list.return_value = MagicMock(data=[MagicMock(id="pm_1")])
        mock_stripe_mod.PaymentIntent.create.return_value = MagicMock(
            id="pi_1", status="succeeded"
        )
        mock_stripe_mod.CardError = _CardError
        mock_stripe_mod.StripeError = Exception
        yield mock_stripe_mod


class TestStripeChargeSink:
    @pytest.mark.asyncio
    async def test_successful_capture(self, mock_stripe):
        result = await StripeChargeSink(dry_run=False).charge(
            Decimal("30.00"), "CAD", "client@example.com", {"booking_id": "bk-1"}
        )

        assert result.success is True
        assert result.reference_id == "pi_1"
        assert result.is_dry_run is False
        mock_stripe.Customer.list.assert_called_once_with(email="client@example.com", limit=1)
        kwargs = mock_stripe.PaymentIntent.create.call_args.kwargs
        assert kwargs["amount"] == 3000
        assert kwargs["currency"] == "cad"
        assert kwargs["customer"] == "cus_1"
        assert kwargs["payment_method"] == "pm_1"
        assert kwargs["off_session"] is True
        assert kwargs["confirm"] is True

    @pytest.mark.asyncio
    async def test_unknown_customer_is_no_payment_method(self, mock_stripe):
        mock_stripe.Customer.list.return_value = MagicMock(data=[])

        result = await StripeChargeSink(dry_run=False).charge(
            Decimal("30.00"), "cad", "nobody@example.com", {}
        )

        assert result.success is False
        assert result.error_kind == ChargeErrorKind.NO_PAYMENT_METHOD
        mock_stripe.PaymentIntent.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_saved_card_is_no_payment_method(self, mock_stripe):
        mock_stripe.PaymentMethod.list.return_value = MagicMock(data=[])

        result = await StripeChargeSink(dry_run=False).charge(
            Decimal("30.00"), "cad", "client@example.com", {}
        )

        assert result.success is False
        assert result.error_kind == ChargeErrorKind.NO_PAYMENT_METHOD

    @pytest.mark.asyncio
    async def test_card_error_is_declined(self, mock_stripe):
        mock_stripe.PaymentIntent.create.side_effect = _CardError("Your card was declined.")

        result = await StripeChargeSink(dry_run=False).charge(
            Decimal("30.00"), "cad", "client@example.com", {}
        )

        assert result.success is False
        assert result.error_kind == ChargeErrorKind.CARD_DECLINED
        assert result.message == "Your card was declined."

    @pytest.mark.asyncio
    async def test_other_stripe_error_is_capture_failure(self, mock_stripe):
        mock_stripe.PaymentIntent.create.side_effect = Exception("API unavailable")

        result = await StripeChargeSink(dry_run=False).charge(
            Decimal("30.00"), "cad", "client@example.com", {}
        )

        assert result.success is False
        assert result.error_kind == ChargeErrorKind.CAPTURE_FAILED

    @pytest.mark.asyncio
    async def test_unconfirmed_intent_is_capture_failure(self, mock_stripe):
        mock_stripe.PaymentIntent.create.return_value = MagicMock(
            id="pi_2", status="requires_action"
        )

        result = await StripeChargeSink(dry_run=False).charge(
            Decimal("30.00"), "cad", "client@example.com", {}
        )

        assert result.success is False
        assert result.reference_id == "pi_2"
        assert result.error_kind == ChargeErrorKind.CAPTURE_FAILED

    @pytest.mark.asyncio
    async def test_dry_run_skips_stripe(self, mock_stripe):
        result = await StripeChargeSink(dry_run=True).charge(
            Decimal("17.50"), "cad", "client@example.com", {}
        )

        assert result.success is True
        assert result.is_dry_run is True
        assert result.reference_id.startswith("dryrun_")
        mock_stripe.Customer.list.assert_not_called()
        mock_stripe.PaymentIntent.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self, mock_stripe):
        with pytest.raises(ValueError):
            await StripeChargeSink(dry_run=True).charge(Decimal("0"), "cad", "x@example.com", {})
