"""
Unit tests for the Overtime Billing Calculator.

Tests the grace period, block quantization, charge rounding and the
separate PSW payout rate table.
"""

from decimal import Decimal

import pytest

from pswdirect.services.overtimeCalculator import (
    GRACE_PERIOD_MINUTES,
    calculate_billable_minutes,
    compute_overtime_charge,
    compute_provider_overtime_pay,
    provider_payout_rate,
)


# ---------------------------------------------------------------------------
# calculate_billable_minutes
# ---------------------------------------------------------------------------


class TestCalculateBillableMinutes:
    @pytest.mark.parametrize("minutes", range(0, GRACE_PERIOD_MINUTES + 1))
    def test_grace_period_bills_nothing(self, minutes):
        assert calculate_billable_minutes(minutes) == 0

    @pytest.mark.parametrize("minutes", range(15, 31))
    def test_half_hour_block(self, minutes):
        assert calculate_billable_minutes(minutes) == 30

    @pytest.mark.parametrize("minutes", range(31, 61))
    def test_hour_block(self, minutes):
        assert calculate_billable_minutes(minutes) == 60

    @pytest.mark.parametrize(
        "minutes, expected",
        [(61, 120), (75, 120), (120, 120), (121, 180), (185, 240)],
    )
    def test_rounds_up_to_full_hours(self, minutes, expected):
        assert calculate_billable_minutes(minutes) == expected

    def test_negative_minutes_rejected(self):
        with pytest.raises(ValueError):
            calculate_billable_minutes(-1)


# ---------------------------------------------------------------------------
# compute_overtime_charge
# ---------------------------------------------------------------------------


class TestComputeOvertimeCharge:
    def test_grace_period_charge_is_zero(self):
        charge = compute_overtime_charge(14, Decimal("35.00"))
        assert charge.billable_minutes == 0
        assert charge.charge_amount == Decimal("0")
        assert charge.is_chargeable is False
        assert charge.description == "Within grace period"

    def test_45_minutes_at_30_per_hour(self):
        charge = compute_overtime_charge(45, Decimal("30"))
        assert charge.billable_minutes == 60
        assert charge.charge_amount == Decimal("30.00")
        assert charge.charge_amount_cents == 3000
        assert charge.description == "1-hour overtime block"

    def test_half_hour_block_charge(self):
        charge = compute_overtime_charge(20, Decimal("35.00"))
        assert charge.billable_minutes == 30
        assert charge.charge_amount == Decimal("17.50")
        assert charge.description == "30-minute overtime block"

    def test_multi_hour_block(self):
        charge = compute_overtime_charge(75, Decimal("32.50"))
        assert charge.billable_minutes == 120
        assert charge.charge_amount == Decimal("65.00")
        assert charge.description == "2-hour overtime block"

    def test_rounding_only_on_final_amount(self):
        # 30 / 60 x 33.33 = 16.665 -> 16.67
        charge = compute_overtime_charge(30, Decimal("33.33"))
        assert charge.charge_amount == Decimal("16.67")

    def test_non_positive_rate_rejected(self):
        with pytest.raises(ValueError):
            compute_overtime_charge(45, Decimal("0"))


# ---------------------------------------------------------------------------
# PSW payout
# ---------------------------------------------------------------------------


class TestProviderPayout:
    @pytest.mark.parametrize(
        "client_rate, expected",
        [
            (Decimal("40"), Decimal("28")),
            (Decimal("35"), Decimal("28")),
            (Decimal("34.99"), Decimal("25")),
            (Decimal("30"), Decimal("25")),
            (Decimal("29.99"), Decimal("22")),
        ],
    )
    def test_payout_rate_table(self, client_rate, expected):
        assert provider_payout_rate(client_rate) == expected

    def test_payout_differs_from_client_charge(self):
        charge = compute_overtime_charge(45, Decimal("35"))
        pay = compute_provider_overtime_pay(
            charge.billable_minutes, provider_payout_rate(Decimal("35"))
        )
        assert charge.charge_amount == Decimal("35.00")
        assert pay == Decimal("28.00")

    def test_half_hour_payout(self):
        assert compute_provider_overtime_pay(30, Decimal("25")) == Decimal("12.50")

    def test_negative_minutes_rejected(self):
        with pytest.raises(ValueError):
            compute_provider_overtime_pay(-30, Decimal("25"))
