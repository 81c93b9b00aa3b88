"""
Tests for identifiers, version-conflict retries and per-aggregate locks
"""

import threading
from datetime import datetime, timezone

import pytest

from supply_deals.kernel.errors import InvalidEntityReference, StreamVersionConflict
from supply_deals.kernel.ids import (
    OFFER_KIND,
    REQUIREMENT_KIND,
    generate_entity_id,
    generate_id,
    require_valid_id,
    validate_id,
)
from supply_deals.kernel.locks import AggregateLocks
from supply_deals.kernel.policy import MarketplacePolicy
from supply_deals.kernel.retry import retry_on_version_conflict


def test_generate_id_is_unique_and_uuid_shaped() -> None:
    ids = {generate_id() for _ in range(200)}
    assert len(ids) == 200
    sample = next(iter(ids))
    assert len(sample) == 36
    assert sample[14] == "7"  # version nibble


def test_entity_id_carries_module_kind_and_date() -> None:
    entity_id = generate_entity_id(
        REQUIREMENT_KIND, datetime(2025, 1, 15, tzinfo=timezone.utc), "M1"
    )
    prefix, kind, day, suffix = entity_id.split("-")
    assert (prefix, kind, day) == ("M1", "REQ", "20250115")
    assert len(suffix) == 8
    assert suffix.isalnum() and suffix.upper() == suffix


def test_validate_id_checks_prefix_only() -> None:
    assert validate_id("M1-REQ-20250115-ABCDEFGH", "M1", REQUIREMENT_KIND)
    assert not validate_id("M1-OFF-20250115-ABCDEFGH", "M1", REQUIREMENT_KIND)
    assert not validate_id("M2-REQ-20250115-ABCDEFGH", "M1", REQUIREMENT_KIND)


def test_require_valid_id_rejects_foreign_reference() -> None:
    with pytest.raises(InvalidEntityReference):
        require_valid_id("M1-OFF-20250115-ABCDEFGH", "M1", REQUIREMENT_KIND)
    require_valid_id("M1-OFF-20250115-ABCDEFGH", "M1", OFFER_KIND)


def test_version_conflict_retry_reloads_then_succeeds() -> None:
    reloads = []
    attempts = {"n": 0}

    @retry_on_version_conflict(max_attempts=3, on_conflict=reloads.append)
    def write() -> str:
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise StreamVersionConflict("M1-REQ-1", 4, 5)
        return "ok"

    assert write() == "ok"
    assert attempts["n"] == 3
    assert len(reloads) == 2
    assert all(c.stream_id == "M1-REQ-1" for c in reloads)


def test_version_conflict_retry_gives_up() -> None:
    @retry_on_version_conflict(max_attempts=2)
    def write() -> None:
        raise StreamVersionConflict("M1-REQ-1", 1, 2)

    with pytest.raises(StreamVersionConflict):
        write()


def test_aggregate_locks_serialise_one_stream() -> None:
    locks = AggregateLocks()
    inside = []
    overlaps = []

    def work() -> None:
        with locks.hold("M1-REQ-1"):
            if inside:
                overlaps.append(True)
            inside.append(True)
            inside.pop()

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not overlaps
    assert len(locks) == 1


def test_policy_unit_conversion_falls_back_to_tons() -> None:
    policy = MarketplacePolicy()
    assert policy.kilograms_per("Kg") == 1
    assert policy.kilograms_per("Toneladas (Ton)") == 1000
    assert policy.kilograms_per("Bultos") == policy.default_kg_per_unit
