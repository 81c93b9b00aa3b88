"""
Prometheus metrics for Supply Deals.

Counters and histograms are module-level singletons; the health server
exposes them on /metrics.
"""

import time
from collections.abc import Callable
from decimal import Decimal
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram

from supply_deals.kernel.errors import SupplyDealsError

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "supply_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

stream_version_conflicts_total = Counter(
    "supply_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["stream_type"],
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "supply_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

commands_processed_total = Counter(
    "supply_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, rejected, failure
)

# ============================================================================
# Marketplace Metrics
# ============================================================================

commitments_recorded_total = Counter(
    "supply_commitments_recorded_total",
    "Total number of commitments appended to the ledger",
)

committed_volume_total = Counter(
    "supply_committed_volume_total",
    "Volume committed through approved offers",
    ["unit"],
)

quantity_increase_decisions_total = Counter(
    "supply_quantity_increase_decisions_total",
    "Admin decisions on quantity-increase requests",
    ["outcome"],  # approved, rejected
)

requirements_by_status = Gauge(
    "supply_requirements_by_status",
    "Number of requirements per status",
    ["status"],
)

offers_by_status = Gauge(
    "supply_offers_by_status",
    "Number of offers per status",
    ["status"],
)

projection_rebuild_duration_seconds = Histogram(
    "supply_projection_rebuild_duration_seconds",
    "Duration of projection rebuild in seconds",
    buckets=(0.01, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0),
)

tick_execution_duration_seconds = Histogram(
    "supply_tick_execution_duration_seconds",
    "Duration of tick execution in seconds",
    buckets=(0.01, 0.1, 0.5, 1.0, 2.5, 5.0),
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track command processing duration.

    Domain errors (SupplyDealsError) count as "rejected"; anything else as
    "failure".
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except SupplyDealsError:
                status = "rejected"
                raise
            except Exception:
                status = "failure"
                raise
            finally:
                duration = time.perf_counter() - start
                command_duration_seconds.labels(command_type=command_type).observe(duration)
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def record_commitment(volume: Decimal, unit: str) -> None:
    commitments_recorded_total.inc()
    committed_volume_total.labels(unit=unit).inc(float(volume))


def update_status_gauges(
    requirement_counts: dict[str, int], offer_counts: dict[str, int]
) -> None:
    """Publish per-status counts computed from the registries"""
    for status, count in requirement_counts.items():
        requirements_by_status.labels(status=status).set(count)
    for status, count in offer_counts.items():
        offers_by_status.labels(status=status).set(count)
