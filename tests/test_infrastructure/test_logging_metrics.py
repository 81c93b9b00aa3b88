"""
Test infrastructure components: logging, metrics, retry.

These tests verify the production hardening infrastructure works correctly.
"""

import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from supply_deals.kernel.errors import ReasonRequired, StreamVersionConflict
from supply_deals.kernel.event_store import SQLiteEventStore
from supply_deals.kernel.events import Event, create_event
from supply_deals.kernel.logging import (
    LogOperation,
    configure_logging,
    get_correlation_id,
    get_logger,
    redact_context,
    set_correlation_id,
)
from supply_deals.kernel.metrics import (
    commands_processed_total,
    commitments_recorded_total,
    committed_volume_total,
    events_appended_total,
    record_commitment,
    requirements_by_status,
    stream_version_conflicts_total,
    track_command_duration,
    update_status_gauges,
)
from supply_deals.kernel.retry import retry_on_sqlite_lock


def sample_event(version: int = 1, command_id: str = "cmd-1") -> Event:
    return create_event(
        event_id=f"evt-{version}-{command_id}",
        stream_id="sample-stream",
        stream_type="sample",
        event_type="SampleRecorded",
        occurred_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
        actor_id="actor-1",
        command_id=command_id,
        payload={"note": "sample"},
        version=version,
    )


class TestLoggingFramework:
    """Test structured logging framework."""

    def test_configure_logging_console(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        assert get_logger(__name__) is not None

    def test_configure_logging_json(self) -> None:
        configure_logging(json_output=True, log_level="DEBUG")
        assert get_logger(__name__) is not None

    def test_correlation_id(self) -> None:
        """Test correlation ID context management."""
        cid = get_correlation_id()
        assert len(cid) > 0
        assert get_correlation_id() == cid

        set_correlation_id("desk-correlation-123")
        assert get_correlation_id() == "desk-correlation-123"

    def test_contact_data_is_redacted(self) -> None:
        redacted = redact_context(
            {"email": "compras@cartonesvalle.co", "id_number": "900123", "operation": "register"}
        )

        assert redacted == {
            "email": "***REDACTED***",
            "id_number": "***REDACTED***",
            "operation": "register",
        }

    def test_log_operation_redacts_its_context(self) -> None:
        operation = LogOperation(get_logger(__name__), "register_user", email="ana@example.com")
        assert operation.context == {"email": "***REDACTED***"}

    def test_log_operation_with_exception(self) -> None:
        """Test LogOperation logs errors and lets them through."""
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with pytest.raises(ValueError):
            with LogOperation(logger, "failing_operation"):
                raise ValueError("Test error")


class TestMetrics:
    """Test Prometheus metrics collection."""

    def test_events_appended_metric(self, tmp_path: Path) -> None:
        store = SQLiteEventStore(tmp_path / "metrics.db")
        counter = events_appended_total.labels(stream_type="sample", event_type="SampleRecorded")
        before = counter._value.get()

        store.append("sample-stream", 0, [sample_event()])

        assert counter._value.get() == before + 1

    def test_version_conflict_metric(self, tmp_path: Path) -> None:
        store = SQLiteEventStore(tmp_path / "metrics.db")
        store.append("sample-stream", 0, [sample_event()])
        counter = stream_version_conflicts_total.labels(stream_type="sample")
        before = counter._value.get()

        with pytest.raises(StreamVersionConflict):
            store.append("sample-stream", 0, [sample_event(1, "cmd-2")])

        assert counter._value.get() == before + 1

    def test_command_outcomes_are_labelled(self) -> None:
        @track_command_duration("SampleCommand")
        def run(outcome: str) -> str:
            if outcome == "rejected":
                raise ReasonRequired("Sampling")
            if outcome == "failure":
                raise RuntimeError("boom")
            return outcome

        def count(status: str) -> float:
            return commands_processed_total.labels(
                command_type="SampleCommand", status=status
            )._value.get()

        before = {status: count(status) for status in ("success", "rejected", "failure")}

        run("success")
        with pytest.raises(ReasonRequired):
            run("rejected")
        with pytest.raises(RuntimeError):
            run("failure")

        for status in ("success", "rejected", "failure"):
            assert count(status) == before[status] + 1

    def test_record_commitment(self) -> None:
        before_count = commitments_recorded_total._value.get()
        before_volume = committed_volume_total.labels(unit="Kg")._value.get()

        record_commitment(Decimal("250.5"), "Kg")

        assert commitments_recorded_total._value.get() == before_count + 1
        assert committed_volume_total.labels(unit="Kg")._value.get() == before_volume + 250.5

    def test_status_gauges_are_set_not_added(self) -> None:
        update_status_gauges({"ACTIVE": 4}, {})
        update_status_gauges({"ACTIVE": 2}, {})

        assert requirements_by_status.labels(status="ACTIVE")._value.get() == 2


class TestRetryLogic:
    """Test retry logic with exponential backoff."""

    def test_retry_decorator(self) -> None:
        call_count = 0

        @retry_on_sqlite_lock(max_attempts=3, min_wait_ms=1, max_wait_ms=5)
        def flaky() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise sqlite3.OperationalError("database is locked")
            return "success"

        assert flaky() == "success"
        assert call_count == 2

    def test_retry_gives_up(self) -> None:
        @retry_on_sqlite_lock(max_attempts=2, min_wait_ms=1, max_wait_ms=5)
        def always_locked() -> None:
            raise sqlite3.OperationalError("database is locked")

        with pytest.raises(sqlite3.OperationalError):
            always_locked()
