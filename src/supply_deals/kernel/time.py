"""
Time provider abstraction for deterministic testing

Validity windows, edit reminders and id date segments all depend on "today",
so time is injected instead of read from the clock.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Tests freeze time, then advance it to cross validity windows or
    reminder thresholds.
    """

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def advance_days(self, days: int) -> None:
        self._current_time += timedelta(days=days)


def today(time_provider: TimeProvider) -> date:
    """Calendar date of the provider's current instant"""
    return time_provider.now().date()
