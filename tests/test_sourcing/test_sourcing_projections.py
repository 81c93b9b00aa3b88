"""
Sourcing projection tests

Projections are fed hand-built events so each test pins down exactly one
read-model rule.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from supply_deals.kernel.errors import DuplicateCommitment
from supply_deals.kernel.events import Event, create_event
from supply_deals.kernel.ids import COMMITMENT_KIND, generate_entity_id, generate_id
from supply_deals.sourcing.projections import (
    CommitmentLedger,
    OfferRegistry,
    RequirementRegistry,
)
from tests.helpers import offer_content, requirement_content

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
REQ = "M1-REQ-20250115-AAAA0001"
OFF = "M1-OFF-20250115-BBBB0001"


def make_event(
    event_type: str,
    payload: dict[str, Any],
    version: int,
    stream_id: str = REQ,
    stream_type: str = "requirement",
) -> Event:
    return create_event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=NOW,
        actor_id="admin-1",
        command_id=generate_id(),
        payload=payload,
        version=version,
    )


def requirement_created(requirement_id: str = REQ, version: int = 1) -> Event:
    return make_event(
        "RequirementCreated",
        {
            "requirement_id": requirement_id,
            "buyer_id": "buyer-1",
            "content": requirement_content(),
            "title": "Cartón Corrugado - 100 Ton",
            "management_fee_per_kg": "70",
            "status": "ACTIVE",
            "created_by_admin": False,
            "created_at": NOW.isoformat(),
            "created_by": "buyer-1",
        },
        version,
        stream_id=requirement_id,
    )


def offer_created(version: int = 2, offer_id: str = OFF) -> Event:
    return make_event(
        "OfferCreated",
        {
            "offer_id": offer_id,
            "requirement_id": REQ,
            "seller_id": "seller-1",
            "content": offer_content("60"),
            "unit": "Ton",
            "penalty_fee_per_kg": "70",
            "status": "PENDING_BUYER",
            "created_by_admin": False,
            "created_at": NOW.isoformat(),
            "created_by": "seller-1",
        },
        version,
    )


def offer_log_event(event_type: str, kind: str, message: str, version: int, to_status: str) -> Event:
    return make_event(
        event_type,
        {
            "offer_id": OFF,
            "requirement_id": REQ,
            "action": "ADMIN_RESPOND",
            "from_status": "PENDING_BUYER",
            "to_status": to_status,
            "log_entry": {
                "entry_id": generate_id(),
                "author": "ADMIN",
                "author_id": "admin-1",
                "message": message,
                "timestamp": NOW.isoformat(),
                "event_type": kind,
            },
            "changed_at": NOW.isoformat(),
        },
        version,
    )


def commitment(
    volume: str,
    version: int,
    offer_id: str = OFF,
    requirement_id: str = REQ,
    commitment_id: str | None = None,
) -> Event:
    return make_event(
        "CommitmentRecorded",
        {
            "commitment_id": commitment_id or generate_entity_id(COMMITMENT_KIND, NOW),
            "requirement_id": requirement_id,
            "offer_id": offer_id,
            "seller_id": "seller-1",
            "volume": volume,
            "unit": "Ton",
            "recorded_at": NOW.isoformat(),
        },
        version,
        stream_id=requirement_id,
    )


def test_every_stream_event_bumps_requirement_version() -> None:
    registry = RequirementRegistry()
    registry.apply_event(requirement_created())
    registry.apply_event(offer_created(version=2))
    registry.apply_event(commitment("60", version=3))

    assert registry.get(REQ)["version"] == 3
    assert registry.total_volume(REQ) == Decimal("100")


def test_user_events_are_ignored() -> None:
    registry = RequirementRegistry()
    registry.apply_event(
        make_event("UserRegistered", {"user_id": "u1"}, 1, stream_id="u1", stream_type="user")
    )
    assert registry.requirements == {}


def test_side_state_is_dropped_when_status_moves_on() -> None:
    registry = RequirementRegistry()
    registry.apply_event(requirement_created())
    registry.apply_event(
        make_event(
            "QuantityIncreaseRequested",
            {
                "requirement_id": REQ,
                "offer_id": OFF,
                "current_total": "100",
                "committed": "60",
                "requested_total": "110",
                "from_status": "ACTIVE",
                "to_status": "PENDING_QUANTITY_INCREASE",
                "requested_at": NOW.isoformat(),
            },
            2,
        )
    )
    assert registry.get(REQ)["triggering_offer_id"] == OFF

    registry.apply_event(
        make_event(
            "StatusForced",
            {
                "entity_kind": "Requirement",
                "entity_id": REQ,
                "requirement_id": REQ,
                "from_status": "PENDING_QUANTITY_INCREASE",
                "to_status": "HIDDEN_BY_ADMIN",
                "reason": "Fraude",
                "forced_at": NOW.isoformat(),
            },
            3,
        )
    )

    record = registry.get(REQ)
    assert record["status"] == "HIDDEN_BY_ADMIN"
    assert record["triggering_offer_id"] is None
    assert record["pending_quantity_increase"] is None


def test_counts_cover_every_status() -> None:
    registry = RequirementRegistry()
    registry.apply_event(requirement_created())

    counts = registry.count_by_status()
    assert counts["ACTIVE"] == 1
    assert counts["COMPLETED"] == 0
    assert len(counts) == 11


def test_discard_stream_forgets_one_aggregate() -> None:
    registry = RequirementRegistry()
    other = "M1-REQ-20250115-AAAA0002"
    registry.apply_event(requirement_created())
    registry.apply_event(requirement_created(other))

    registry.discard_stream(REQ)

    assert registry.get(REQ) is None
    assert registry.get(other) is not None


def test_communication_log_is_append_only() -> None:
    offers = OfferRegistry()
    offers.apply_event(offer_created())
    offers.apply_event(
        offer_log_event("AdminResponded", "ADMIN_RESPONSE", "Revisando", 3, "PENDING_BUYER")
    )
    offers.apply_event(
        offer_log_event(
            "OfferRejectedByBuyer", "BUYER_REJECTION", "Precio alto", 4, "REJECTED"
        )
    )

    log = offers.get(OFF)["communication_log"]
    assert [e["message"] for e in log] == ["Revisando", "Precio alto"]
    assert offers.latest_log_entry(OFF)["message"] == "Precio alto"
    assert offers.latest_log_entry(OFF, {"ADMIN_RESPONSE"})["message"] == "Revisando"
    assert offers.latest_log_entry(OFF, {"ADMIN_FEEDBACK"}) is None
    assert offers.get(OFF)["status"] == "REJECTED"


def test_offer_listing_filters() -> None:
    offers = OfferRegistry()
    offers.apply_event(offer_created())
    offers.apply_event(offer_created(version=3, offer_id="M1-OFF-20250115-BBBB0002"))

    assert len(offers.list_offers(requirement_id=REQ)) == 2
    assert offers.list_offers(seller_id="seller-2") == []
    assert len(offers.list_offers(status="PENDING_BUYER")) == 2
    assert offers.volume(OFF) == Decimal("60")


def test_ledger_sums_per_requirement() -> None:
    ledger = CommitmentLedger()
    other = "M1-REQ-20250115-AAAA0002"
    ledger.apply_event(commitment("60", 3))
    ledger.apply_event(commitment("40", 5, offer_id="M1-OFF-20250115-BBBB0002"))
    ledger.apply_event(commitment("25", 3, offer_id="M1-OFF-20250115-BBBB0003", requirement_id=other))

    assert ledger.total_committed(REQ) == Decimal("100")
    assert ledger.total_committed(other) == Decimal("25")
    assert ledger.has_commitment(OFF)
    assert ledger.get_for_offer(OFF)["volume"] == Decimal("60")
    assert ledger.is_fulfilled(REQ, Decimal("100"))


def test_ledger_snapshot() -> None:
    ledger = CommitmentLedger()
    ledger.apply_event(commitment("60", 3))

    snapshot = ledger.to_dict(REQ, Decimal("100"))

    assert snapshot["committed"] == "60"
    assert snapshot["remaining"] == "40"
    assert snapshot["fulfilled"] is False
    assert snapshot["commitments"][0]["volume"] == "60"


def test_ledger_discard_keeps_other_requirements() -> None:
    ledger = CommitmentLedger()
    other = "M1-REQ-20250115-AAAA0002"
    ledger.apply_event(commitment("60", 3))
    ledger.apply_event(commitment("25", 3, offer_id="M1-OFF-20250115-BBBB0003", requirement_id=other))

    ledger.discard_stream(REQ)

    assert not ledger.has_commitment(OFF)
    assert ledger.total_committed(REQ) == Decimal("0")
    assert ledger.total_committed(other) == Decimal("25")


def test_ledger_refuses_repeated_commitment_id() -> None:
    ledger = CommitmentLedger()
    ledger.apply_event(commitment("60", 3, commitment_id="M1-COM-20250115-CCCC0001"))

    with pytest.raises(DuplicateCommitment):
        ledger.apply_event(
            commitment(
                "40",
                4,
                offer_id="M1-OFF-20250115-BBBB0002",
                commitment_id="M1-COM-20250115-CCCC0001",
            )
        )

    assert ledger.total_committed(REQ) == Decimal("60")
    assert not ledger.has_commitment("M1-OFF-20250115-BBBB0002")


def test_ledger_refuses_second_commitment_for_offer() -> None:
    ledger = CommitmentLedger()
    ledger.apply_event(commitment("60", 3))

    with pytest.raises(DuplicateCommitment):
        ledger.apply_event(commitment("60", 4))

    assert ledger.total_committed(REQ) == Decimal("60")
