"""
Fee schedule and delivery periods

The platform charges the buyer a management fee per kilogram, tiered by the
requirement's total volume. A seller who fails to deliver owes a penalty fee
per kilogram that mirrors the fee the buyer accepted.

delivery_periods() estimates how many deliveries fit in a validity window,
which is what turns "1200 t over a year, monthly" into 100 t per delivery.
"""

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from supply_deals.kernel.policy import MarketplacePolicy

# (upper bound in tons, exclusive; fee per kg)
FEE_TIERS: tuple[tuple[Decimal, Decimal], ...] = tuple(
    (Decimal(limit), Decimal(fee))
    for limit, fee in (
        ("0.5", "250"),
        ("1", "200"),
        ("3", "180"),
        ("5", "160"),
        ("10", "140"),
        ("25", "120"),
        ("50", "100"),
        ("100", "80"),
        ("250", "70"),
        ("500", "60"),
        ("1000", "50"),
        ("2000", "45"),
        ("3000", "40"),
        ("4000", "35"),
        ("5000", "30"),
        ("6000", "25"),
    )
)

_LINEAR_A_START = Decimal("6000")
_LINEAR_A_BASE = Decimal("23.8")
_LINEAR_A_STEP = Decimal("0.2")
_LINEAR_B_START = Decimal("63000")
_LINEAR_B_BASE = Decimal("12.5")
_LINEAR_B_STEP = Decimal("0.1")
_FEE_FLOOR = Decimal("1.0")
_CENTS = Decimal("0.01")

ONE_TIME = "Única Vez"


def management_fee_per_kg(kg: Decimal) -> Decimal:
    """
    Management fee per kilogram for a requirement of the given size

    Fixed tiers up to 6 000 t; then 23.8 minus 0.2 per full 1 000 t above
    6 000 t; from 63 000 t on, 12.5 minus 0.1 per full 1 000 t, never
    below 1.0.

    Args:
        kg: Total requirement volume in kilograms
    """
    tons = Decimal(kg) / 1000

    for limit, fee in FEE_TIERS:
        if tons < limit:
            return fee

    if tons < _LINEAR_B_START:
        steps = int((tons - _LINEAR_A_START) // 1000)
        return (_LINEAR_A_BASE - steps * _LINEAR_A_STEP).quantize(_CENTS, ROUND_HALF_UP)

    steps = int((tons - _LINEAR_B_START) // 1000)
    fee = (_LINEAR_B_BASE - steps * _LINEAR_B_STEP).quantize(_CENTS, ROUND_HALF_UP)
    return max(fee, _FEE_FLOOR)


def penalty_fee_per_kg(kg: Decimal) -> Decimal:
    """Penalty fee mirrors the management fee schedule"""
    return management_fee_per_kg(kg)


def to_kilograms(volume: Decimal, unit: str, policy: MarketplacePolicy) -> Decimal:
    return Decimal(volume) * policy.kilograms_per(unit)


def requirement_fee(volume: Decimal, unit: str, policy: MarketplacePolicy) -> Decimal:
    """Fee per kg stamped on a requirement of this volume"""
    return management_fee_per_kg(to_kilograms(volume, unit, policy))


def _first_of_month(year: int, month: int) -> date:
    # month may overflow past 12
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return date(year, month, 1)


def _next_delivery(cursor: date, frequency: str) -> date:
    if frequency == "Diario":
        return cursor + timedelta(days=1)
    if frequency == "Semanal":
        return cursor + timedelta(days=7)
    if frequency == "Quincenal":
        return cursor + timedelta(days=14)
    if frequency == "Mensual":
        return _first_of_month(cursor.year, cursor.month + 1)
    if frequency == "Trimestral":
        return _first_of_month(cursor.year, cursor.month + 3)
    if frequency == "Anual":
        return date(cursor.year + 1, 1, 1)
    return cursor + timedelta(days=365)


def delivery_periods(start: date | None, end: date | None, frequency: str) -> int:
    """
    Number of deliveries between start and end (both inclusive)

    Monthly, quarterly and yearly schedules restart on the 1st of the
    following period, so a window starting mid-month still counts its first
    partial month.

    Returns:
        1 for one-time supply or an open window, 0 for an inverted window,
        otherwise at least 1
    """
    if start is None or end is None or frequency == ONE_TIME:
        return 1
    if start >= end:
        return 0

    periods = 0
    cursor = start
    while cursor <= end:
        periods += 1
        cursor = _next_delivery(cursor, frequency)
    return max(1, periods)


def volume_per_delivery(total: Decimal, start: date | None, end: date | None, frequency: str) -> Decimal:
    periods = delivery_periods(start, end, frequency)
    if periods == 0:
        return Decimal("0")
    return Decimal(total) / periods
