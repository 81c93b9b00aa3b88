"""
Tests for SQLite Event Store

Verifies core event sourcing properties:
- Append-only semantics
- Idempotency via command_id
- Optimistic locking via stream versioning
- Multi-event batches written atomically

Fun fact: Event sourcing tests are like archaeology - we're verifying
that the historical record is complete, immutable, and replayable!
"""

from datetime import datetime, timezone

import pytest

from supply_deals.kernel.errors import StreamVersionConflict
from supply_deals.kernel.event_store import SQLiteEventStore
from supply_deals.kernel.events import Event
from supply_deals.kernel.ids import generate_id


def make_event(
    stream_id: str,
    version: int,
    command_id: str | None = None,
    event_type: str = "TestEvent",
    stream_type: str = "requirement",
    payload: dict | None = None,
) -> Event:
    return Event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
        actor_id="actor-1",
        command_id=command_id or generate_id(),
        payload=payload or {},
        version=version,
    )


def test_append_and_load_single_event(event_store: SQLiteEventStore) -> None:
    event = make_event("M1-REQ-1", 1, payload={"volume": "60"})

    appended = event_store.append("M1-REQ-1", 0, [event])
    assert appended == [event]

    loaded = event_store.load_stream("M1-REQ-1")
    assert len(loaded) == 1
    assert loaded[0].event_id == event.event_id
    assert loaded[0].payload == {"volume": "60"}
    assert loaded[0].occurred_at == event.occurred_at


def test_batch_appends_in_one_version_run(event_store: SQLiteEventStore) -> None:
    """Approve offer + record commitment + complete requirement: one write"""
    command_id = generate_id()
    batch = [
        make_event("M1-REQ-2", 1, command_id, "CommitmentRecorded"),
        make_event("M1-REQ-2", 2, command_id, "OfferApprovedByBuyer"),
        make_event("M1-REQ-2", 3, command_id, "RequirementCompleted"),
    ]

    event_store.append("M1-REQ-2", 0, batch)

    assert event_store.get_stream_version("M1-REQ-2") == 3
    assert [e.event_type for e in event_store.load_stream("M1-REQ-2")] == [
        "CommitmentRecorded",
        "OfferApprovedByBuyer",
        "RequirementCompleted",
    ]


def test_optimistic_locking_conflict(event_store: SQLiteEventStore) -> None:
    event_store.append("M1-REQ-3", 0, [make_event("M1-REQ-3", 1)])

    with pytest.raises(StreamVersionConflict) as exc_info:
        event_store.append("M1-REQ-3", 0, [make_event("M1-REQ-3", 1)])

    assert exc_info.value.stream_id == "M1-REQ-3"
    assert exc_info.value.expected_version == 0
    assert exc_info.value.actual_version == 1


def test_conflict_writes_nothing_from_the_batch(event_store: SQLiteEventStore) -> None:
    event_store.append("M1-REQ-4", 0, [make_event("M1-REQ-4", 1)])

    command_id = generate_id()
    stale = [make_event("M1-REQ-4", 1, command_id), make_event("M1-REQ-4", 2, command_id)]
    with pytest.raises(StreamVersionConflict):
        event_store.append("M1-REQ-4", 0, stale)

    assert event_store.count_events() == 1


def test_command_idempotency(event_store: SQLiteEventStore) -> None:
    """Same command_id on the same stream returns the stored events"""
    command_id = generate_id()
    first = make_event("M1-REQ-5", 1, command_id, payload={"attempt": 1})
    event_store.append("M1-REQ-5", 0, [first])

    retry = make_event("M1-REQ-5", 2, command_id, payload={"attempt": 2})
    result = event_store.append("M1-REQ-5", 1, [retry])

    assert len(result) == 1
    assert result[0].event_id == first.event_id
    assert event_store.count_events() == 1


def test_same_command_id_on_another_stream_is_not_a_replay(event_store: SQLiteEventStore) -> None:
    """A tick reuses its id across streams; each stream gets its own events"""
    tick_id = generate_id()
    event_store.append("M1-REQ-6", 0, [make_event("M1-REQ-6", 1, tick_id)])
    event_store.append("M1-REQ-7", 0, [make_event("M1-REQ-7", 1, tick_id)])

    assert event_store.count_events() == 2
    assert event_store.count_streams() == 2


def test_load_all_events_keeps_insertion_order(event_store: SQLiteEventStore) -> None:
    event_store.append("M1-REQ-8", 0, [make_event("M1-REQ-8", 1)])
    event_store.append("user-1", 0, [make_event("user-1", 1, stream_type="user")])
    event_store.append("M1-REQ-8", 1, [make_event("M1-REQ-8", 2)])

    loaded = event_store.load_all_events()
    assert [(e.stream_id, e.version) for e in loaded] == [
        ("M1-REQ-8", 1),
        ("user-1", 1),
        ("M1-REQ-8", 2),
    ]


def test_query_events_by_type(event_store: SQLiteEventStore) -> None:
    event_store.append("M1-REQ-9", 0, [make_event("M1-REQ-9", 1, event_type="OfferCreated")])
    event_store.append(
        "M1-REQ-9", 1, [make_event("M1-REQ-9", 2, event_type="QuantityIncreaseRequested")]
    )

    found = event_store.query_events(event_type="QuantityIncreaseRequested")
    assert len(found) == 1
    assert found[0].version == 2

    assert len(event_store.query_events(stream_type="user")) == 0


def test_empty_append_is_a_no_op(event_store: SQLiteEventStore) -> None:
    assert event_store.append("M1-REQ-10", 0, []) == []
    assert event_store.get_stream_version("M1-REQ-10") == 0
