"""
Retry logic with exponential backoff for transient failures.

Two situations are retried:
- SQLite "database is locked" while another process holds the write lock
- a stream version conflict, after the caller has reloaded the aggregate
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from supply_deals.kernel.errors import StreamVersionConflict
from supply_deals.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention (OperationalError).

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_ms: Minimum wait time in milliseconds (default: 100)
        max_wait_ms: Maximum wait time in milliseconds (default: 1000)
    """
    return retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "SQLite lock detected, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )


def retry_on_version_conflict(
    max_attempts: int = 3,
    on_conflict: Callable[[StreamVersionConflict], None] | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry a command after another writer advanced the same stream.

    Args:
        max_attempts: Maximum number of attempts
        on_conflict: Called with the conflict before the next attempt,
            typically to reload the aggregate from the event store

    Example:
        runner = retry_on_version_conflict(on_conflict=desk.resync)
        events = runner(desk.decide_and_append)(stream_id, decide)
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Stream version conflict, reloading aggregate",
            attempt=retry_state.attempt_number,
            stream_id=getattr(exc, "stream_id", None),
        )
        if on_conflict is not None and isinstance(exc, StreamVersionConflict):
            on_conflict(exc)

    return retry(
        retry=retry_if_exception_type(StreamVersionConflict),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.01, min=0.01, max=0.2),
        before_sleep=_before_sleep,
        reraise=True,
    )
