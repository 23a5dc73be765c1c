"""Tests for the cancellation refund policy."""

import pytest

from booking_engine.models import DEFAULT_CANCELLATION_POLICY, CancellationPolicy
from booking_engine.services.bookings.cancellation import calculate_refund


class TestCalculateRefund:
    @pytest.mark.parametrize(
        ("hours", "amount", "percent"),
        [
            (48, 2000, 100),
            (24, 2000, 100),     # free threshold is inclusive
            (23.9, 1000, 50),
            (12, 1000, 50),      # partial threshold is inclusive
            (11.9, 0, 0),
            (1, 0, 0),
            (-2, 0, 0),
        ],
    )
    def test_default_policy_tiers(self, hours, amount, percent):
        decision = calculate_refund(2000, hours, DEFAULT_CANCELLATION_POLICY)
        assert decision.amount_cents == amount
        assert decision.percent == percent

    def test_partial_rounds_half_up(self):
        policy = CancellationPolicy(partial_refund_percent=50)
        assert calculate_refund(1001, 18, policy).amount_cents == 501

    def test_no_refund_hours_does_not_add_a_tier(self):
        policy = CancellationPolicy(
            free_cancellation_hours=48, partial_refund_hours=24, partial_refund_percent=25, no_refund_hours=6
        )
        assert calculate_refund(4000, 12, policy).amount_cents == 0
        assert calculate_refund(4000, 30, policy).amount_cents == 1000

    def test_free_booking(self):
        assert calculate_refund(0, 48, DEFAULT_CANCELLATION_POLICY).amount_cents == 0
