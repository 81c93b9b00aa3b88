"""
Tests for the fee schedule and delivery periods
"""

from datetime import date
from decimal import Decimal

import pytest

from supply_deals.kernel.policy import MarketplacePolicy
from supply_deals.sourcing.fees import (
    delivery_periods,
    management_fee_per_kg,
    penalty_fee_per_kg,
    requirement_fee,
    volume_per_delivery,
)


@pytest.mark.parametrize(
    "tons, fee",
    [
        ("0.2", "250"),
        ("0.5", "200"),
        ("2", "180"),
        ("99.9", "80"),
        ("100", "70"),
        ("1200", "45"),
        ("5999", "25"),
        ("6000", "23.80"),
        ("7500", "23.60"),
        ("62999", "12.60"),
        ("63000", "12.50"),
        ("70000", "11.80"),
        ("500000", "1.00"),
    ],
)
def test_management_fee_tiers(tons: str, fee: str) -> None:
    assert management_fee_per_kg(Decimal(tons) * 1000) == Decimal(fee)


def test_penalty_fee_mirrors_management_fee() -> None:
    assert penalty_fee_per_kg(Decimal("100000")) == management_fee_per_kg(Decimal("100000"))


def test_requirement_fee_converts_units() -> None:
    policy = MarketplacePolicy()
    assert requirement_fee(Decimal("100"), "Ton", policy) == Decimal("70")
    assert requirement_fee(Decimal("100"), "Kg", policy) == Decimal("250")


def test_monthly_year_counts_twelve_deliveries() -> None:
    assert delivery_periods(date(2025, 2, 1), date(2026, 1, 31), "Mensual") == 12
    per = volume_per_delivery(Decimal("1200"), date(2025, 2, 1), date(2026, 1, 31), "Mensual")
    assert per == Decimal("100")


def test_mid_month_start_counts_partial_first_month() -> None:
    assert delivery_periods(date(2025, 1, 20), date(2025, 3, 31), "Mensual") == 3


@pytest.mark.parametrize(
    "frequency, expected",
    [
        ("Diario", 7),
        ("Semanal", 1),
        ("Quincenal", 1),
        ("Única Vez", 1),
    ],
)
def test_delivery_periods_by_frequency(frequency: str, expected: int) -> None:
    assert delivery_periods(date(2025, 3, 1), date(2025, 3, 7), frequency) == expected


def test_open_or_inverted_windows() -> None:
    assert delivery_periods(None, date(2025, 3, 1), "Mensual") == 1
    assert delivery_periods(date(2025, 3, 1), date(2025, 3, 1), "Mensual") == 0
    assert volume_per_delivery(Decimal("10"), date(2025, 3, 2), date(2025, 3, 1), "Mensual") == 0
