"""
Tests for commission arithmetic.

Tests cover:
- R$ rounding (2 decimals, half up)
- Effective rate priority (individual override > tier > zero)
- Recurring commission window
"""
from datetime import datetime
from decimal import Decimal

import pytest

from backend.app.models.ambassador import Ambassador, AmbassadorTier
from backend.app.services.commissions import (
    calculate_commission,
    get_effective_commission_rate,
    months_elapsed,
    recurring_commission_applies,
    round_brl,
)


def _silver():
    return AmbassadorTier(
        id="silver", name="Prata", min_sales=10,
        commission_rate=Decimal("8"), recurring_rate=Decimal("3"), recurring_months=6,
    )


def test_silver_sale_of_100_earns_8():
    assert calculate_commission(Decimal("100"), Decimal("8")) == Decimal("8.00")


@pytest.mark.parametrize("amount,rate,expected", [
    ("97.00", "5", "4.85"),
    ("0.10", "5", "0.01"),      # 0.005 rounds half up
    ("19.90", "8", "1.59"),     # 1.592
    ("33.33", "12", "4.00"),    # 3.9996
    ("49.90", "7.5", "3.74"),   # 3.7425
    ("10.50", "10", "1.05"),
])
def test_commission_rounding(amount, rate, expected):
    assert calculate_commission(amount, rate) == Decimal(expected)


def test_round_brl_accepts_float_without_binary_noise():
    assert round_brl(0.1 + 0.2) == Decimal("0.30")
    assert round_brl(2.675) == Decimal("2.68")


def test_effective_rate_prefers_override():
    amb = Ambassador(custom_commission_rate=Decimal("15"))
    assert get_effective_commission_rate(amb, _silver()) == Decimal("15")


def test_effective_rate_uses_tier():
    amb = Ambassador(custom_commission_rate=None)
    assert get_effective_commission_rate(amb, _silver()) == Decimal("8")


def test_effective_rate_zero_without_tier():
    amb = Ambassador(custom_commission_rate=None)
    assert get_effective_commission_rate(amb, None) == Decimal("0")


def test_months_elapsed():
    assert months_elapsed(datetime(2026, 1, 15), datetime(2026, 2, 15)) == 1
    assert months_elapsed(datetime(2026, 1, 15), datetime(2026, 2, 14)) == 0
    assert months_elapsed(datetime(2025, 11, 30), datetime(2026, 5, 30)) == 6
    # Month-end start: February has no 31st
    assert months_elapsed(datetime(2026, 1, 31), datetime(2026, 2, 28)) == 0
    assert months_elapsed(datetime(2026, 1, 31), datetime(2026, 3, 31)) == 2
    assert months_elapsed(datetime(2026, 3, 1), datetime(2026, 2, 1)) == -1


def test_recurring_within_window():
    assert recurring_commission_applies(_silver(), datetime(2026, 1, 10), datetime(2026, 7, 10)) is True


def test_recurring_after_window():
    assert recurring_commission_applies(_silver(), datetime(2026, 1, 10), datetime(2026, 8, 10)) is False


def test_recurring_disabled_for_tier_without_recurring_rate():
    bronze = AmbassadorTier(id="bronze", min_sales=0, commission_rate=Decimal("5"),
                            recurring_rate=Decimal("0"), recurring_months=0)
    assert recurring_commission_applies(bronze, datetime(2026, 1, 10), datetime(2026, 2, 10)) is False


def test_recurring_renewal_before_original_sale():
    assert recurring_commission_applies(_silver(), datetime(2026, 3, 10), datetime(2026, 1, 10)) is False
