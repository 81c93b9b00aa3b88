"""
Sourcing projections

Read models rebuilt from the requirement streams:
- RequirementRegistry: requirements with their status and side state
  (parked edits, pending quantity increase, rejection reason)
- OfferRegistry: offers with their communication logs
- CommitmentLedger: append-only commitments; the only source of truth for
  how much volume a requirement has secured

Payload values stay in their JSON form (ISO dates, decimal strings);
helpers convert where arithmetic is needed.

Fun fact: The word "ledger" comes from the Middle English "legger" - a book
that *lay* permanently on a church lectern instead of being carried around.
Ours lies permanently in the event log!
"""

from decimal import Decimal
from typing import Any

from supply_deals.kernel.errors import DuplicateCommitment
from supply_deals.kernel.events import Event
from supply_deals.sourcing.events import (
    OFFER_STATUS_EVENT_TYPES,
    REQUIREMENT_EDIT_DECIDED,
    REQUIREMENT_EDIT_PROPOSED,
    REQUIREMENT_EDIT_REQUESTED,
    REQUIREMENT_OWNER_EDIT_DECIDED,
    REQUIREMENT_STATUS_EVENT_TYPES,
    REQUIREMENT_STREAM,
)
from supply_deals.sourcing.models import OfferStatus, RequirementStatus
from supply_deals.sourcing.transitions import RequirementAction

_REQUIREMENT_STATUS_EVENTS = {
    event_type: action for action, event_type in REQUIREMENT_STATUS_EVENT_TYPES.items()
}
_OFFER_STATUS_EVENTS = {
    event_type: action for action, event_type in OFFER_STATUS_EVENT_TYPES.items()
}

_EDIT_STATUSES = {"PENDING_EDIT", "WAITING_FOR_OWNER_EDIT_APPROVAL"}


class RequirementRegistry:
    """
    Requirement projection

    Every event on a requirement stream (offer and ledger events included)
    advances the record's version, which is the expected version for the
    next command on that aggregate.
    """

    def __init__(self) -> None:
        self.requirements: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        if event.stream_type != REQUIREMENT_STREAM:
            return

        event_type = event.event_type
        if event_type == "RequirementCreated":
            self._apply_created(event)
        elif event_type in _REQUIREMENT_STATUS_EVENTS:
            self._apply_status_changed(event, _REQUIREMENT_STATUS_EVENTS[event_type])
        elif event_type == "RequirementResubmitted":
            self._apply_resubmitted(event)
        elif event_type in (REQUIREMENT_EDIT_REQUESTED, REQUIREMENT_EDIT_PROPOSED):
            self._apply_edit_proposed(event)
        elif event_type in (REQUIREMENT_OWNER_EDIT_DECIDED, REQUIREMENT_EDIT_DECIDED):
            self._apply_edit_decided(event)
        elif event_type == "QuantityIncreaseRequested":
            self._apply_quantity_increase_requested(event)
        elif event_type in ("QuantityIncreaseApproved", "QuantityIncreaseRejected"):
            self._apply_quantity_increase_decided(event)
        elif event_type == "StatusForced" and event.payload["entity_kind"] == "Requirement":
            self._apply_status_forced(event)
        elif event_type == "EditApprovalOverdue" and event.payload["entity_kind"] == "Requirement":
            self._record(event)["edit_reminder_sent"] = True

        record = self.requirements.get(event.stream_id)
        if record is not None:
            record["version"] = event.version
            record["updated_at"] = event.occurred_at.isoformat()

    def _record(self, event: Event) -> dict[str, Any]:
        return self.requirements[event.stream_id]

    def _apply_created(self, event: Event) -> None:
        payload = event.payload
        self.requirements[payload["requirement_id"]] = {
            "requirement_id": payload["requirement_id"],
            "buyer_id": payload["buyer_id"],
            "status": payload["status"],
            "content": payload["content"],
            "title": payload["title"],
            "management_fee_per_kg": payload["management_fee_per_kg"],
            "created_by_admin": payload["created_by_admin"],
            "created_at": payload["created_at"],
            "pending_edits": None,
            "pending_edits_by": None,
            "pending_edits_since": None,
            "edit_reminder_sent": False,
            "pending_quantity_increase": None,
            "triggering_offer_id": None,
            "rejection_reason": None,
            "moderation_feedback": None,
            "status_before_deletion_request": None,
            "version": event.version,
        }

    def _apply_status_changed(self, event: Event, action: RequirementAction) -> None:
        payload = event.payload
        record = self._record(event)
        record["status"] = payload["to_status"]

        if action == RequirementAction.REJECT:
            record["rejection_reason"] = payload["reason"]
        elif action == RequirementAction.RETURN_FOR_EDIT:
            record["moderation_feedback"] = payload["reason"]
        elif action == RequirementAction.REQUEST_DELETION:
            record["status_before_deletion_request"] = payload["from_status"]
        self._drop_stale_side_state(record)

    def _apply_resubmitted(self, event: Event) -> None:
        payload = event.payload
        record = self._record(event)
        record["content"] = payload["content"]
        record["title"] = payload["title"]
        record["management_fee_per_kg"] = payload["management_fee_per_kg"]
        record["status"] = payload["to_status"]
        record["moderation_feedback"] = None

    def _apply_edit_proposed(self, event: Event) -> None:
        payload = event.payload
        record = self._record(event)
        record["pending_edits"] = payload["edit"]
        record["pending_edits_by"] = payload["proposed_by"]
        record["pending_edits_since"] = payload["proposed_at"]
        record["edit_reminder_sent"] = False
        record["status"] = payload["to_status"]

    def _apply_edit_decided(self, event: Event) -> None:
        payload = event.payload
        record = self._record(event)
        if payload["approved"]:
            record["content"] = payload["content"]
            record["title"] = payload["title"]
            record["management_fee_per_kg"] = payload["management_fee_per_kg"]
        self._clear_pending_edits(record)
        record["status"] = payload["to_status"]

    def _apply_quantity_increase_requested(self, event: Event) -> None:
        payload = event.payload
        record = self._record(event)
        record["pending_quantity_increase"] = payload["requested_total"]
        record["triggering_offer_id"] = payload["offer_id"]
        record["status"] = payload["to_status"]

    def _apply_quantity_increase_decided(self, event: Event) -> None:
        payload = event.payload
        record = self._record(event)
        if payload["approved"]:
            record["content"] = {**record["content"], "total_volume": payload["new_total"]}
            record["title"] = payload["title"]
            record["management_fee_per_kg"] = payload["management_fee_per_kg"]
        record["pending_quantity_increase"] = None
        record["triggering_offer_id"] = None
        record["status"] = payload["to_status"]

    def _apply_status_forced(self, event: Event) -> None:
        payload = event.payload
        record = self._record(event)
        record["status"] = payload["to_status"]
        if payload["to_status"] == RequirementStatus.REJECTED.value:
            record["rejection_reason"] = payload["reason"]
        self._drop_stale_side_state(record)

    def _drop_stale_side_state(self, record: dict[str, Any]) -> None:
        """Side state only lives as long as the status it belongs to"""
        status = record["status"]
        if status != RequirementStatus.REJECTED.value:
            record["rejection_reason"] = None
        if status != RequirementStatus.PENDING_EDIT.value:
            record["moderation_feedback"] = None
        if status != RequirementStatus.PENDING_QUANTITY_INCREASE.value:
            record["pending_quantity_increase"] = None
            record["triggering_offer_id"] = None
        if status != RequirementStatus.PENDING_DELETION.value:
            record["status_before_deletion_request"] = None
        if status not in _EDIT_STATUSES:
            self._clear_pending_edits(record)

    @staticmethod
    def _clear_pending_edits(record: dict[str, Any]) -> None:
        record["pending_edits"] = None
        record["pending_edits_by"] = None
        record["pending_edits_since"] = None
        record["edit_reminder_sent"] = False

    def discard_stream(self, requirement_id: str) -> None:
        """Forget one aggregate before replaying it from the store"""
        self.requirements.pop(requirement_id, None)

    def get(self, requirement_id: str) -> dict[str, Any] | None:
        return self.requirements.get(requirement_id)

    def total_volume(self, requirement_id: str) -> Decimal:
        return Decimal(str(self.requirements[requirement_id]["content"]["total_volume"]))

    def list_requirements(
        self,
        status: RequirementStatus | str | None = None,
        buyer_id: str | None = None,
    ) -> list[dict[str, Any]]:
        results = list(self.requirements.values())
        if status is not None:
            wanted = RequirementStatus(status).value
            results = [r for r in results if r["status"] == wanted]
        if buyer_id is not None:
            results = [r for r in results if r["buyer_id"] == buyer_id]
        return sorted(results, key=lambda r: r["created_at"])

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in RequirementStatus}
        for record in self.requirements.values():
            counts[record["status"]] += 1
        return counts


class OfferRegistry:
    """
    Offer projection

    Each offer carries its communication log: entries are appended from the
    log_entry of status-change events and never edited.
    """

    def __init__(self) -> None:
        self.offers: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        if event.stream_type != REQUIREMENT_STREAM:
            return

        event_type = event.event_type
        if event_type == "OfferCreated":
            self._apply_created(event)
        elif event_type in _OFFER_STATUS_EVENTS:
            self._apply_status_changed(event)
        elif event_type == "OfferRevised":
            self._apply_revised(event)
        elif event_type == "OfferEditProposed":
            self._apply_edit_proposed(event)
        elif event_type == "OfferEditDecided":
            self._apply_edit_decided(event)
        elif event_type == "StatusForced" and event.payload["entity_kind"] == "Offer":
            self._apply_status_forced(event)
        elif event_type == "EditApprovalOverdue" and event.payload["entity_kind"] == "Offer":
            self.offers[event.payload["entity_id"]]["edit_reminder_sent"] = True

    def _offer(self, event: Event) -> dict[str, Any]:
        offer = self.offers[event.payload["offer_id"]]
        offer["updated_at"] = event.occurred_at.isoformat()
        return offer

    def _apply_created(self, event: Event) -> None:
        payload = event.payload
        self.offers[payload["offer_id"]] = {
            "offer_id": payload["offer_id"],
            "requirement_id": payload["requirement_id"],
            "seller_id": payload["seller_id"],
            "status": payload["status"],
            "content": payload["content"],
            "unit": payload["unit"],
            "penalty_fee_per_kg": payload["penalty_fee_per_kg"],
            "created_by_admin": payload["created_by_admin"],
            "created_at": payload["created_at"],
            "updated_at": payload["created_at"],
            "pending_edits": None,
            "pending_edits_since": None,
            "edit_reminder_sent": False,
            "communication_log": [],
        }

    def _apply_status_changed(self, event: Event) -> None:
        payload = event.payload
        offer = self._offer(event)
        offer["status"] = payload["to_status"]
        if payload["to_status"] not in _EDIT_STATUSES:
            self._clear_pending_edits(offer)
        if payload.get("log_entry"):
            offer["communication_log"].append(payload["log_entry"])

    def _apply_revised(self, event: Event) -> None:
        payload = event.payload
        offer = self._offer(event)
        offer["content"] = payload["content"]
        offer["status"] = payload["to_status"]
        self._clear_pending_edits(offer)

    def _apply_edit_proposed(self, event: Event) -> None:
        payload = event.payload
        offer = self._offer(event)
        offer["pending_edits"] = payload["edit"]
        offer["pending_edits_since"] = payload["proposed_at"]
        offer["edit_reminder_sent"] = False
        offer["status"] = payload["to_status"]

    def _apply_edit_decided(self, event: Event) -> None:
        payload = event.payload
        offer = self._offer(event)
        if payload["approved"]:
            offer["content"] = payload["content"]
        self._clear_pending_edits(offer)
        offer["status"] = payload["to_status"]

    def _apply_status_forced(self, event: Event) -> None:
        payload = event.payload
        offer = self.offers[payload["entity_id"]]
        offer["status"] = payload["to_status"]
        offer["updated_at"] = event.occurred_at.isoformat()
        if payload["to_status"] not in _EDIT_STATUSES:
            self._clear_pending_edits(offer)

    @staticmethod
    def _clear_pending_edits(offer: dict[str, Any]) -> None:
        offer["pending_edits"] = None
        offer["pending_edits_since"] = None
        offer["edit_reminder_sent"] = False

    def discard_stream(self, requirement_id: str) -> None:
        for offer_id in [
            oid for oid, o in list(self.offers.items()) if o["requirement_id"] == requirement_id
        ]:
            del self.offers[offer_id]

    def get(self, offer_id: str) -> dict[str, Any] | None:
        return self.offers.get(offer_id)

    def volume(self, offer_id: str) -> Decimal:
        return Decimal(str(self.offers[offer_id]["content"]["volume"]))

    def list_offers(
        self,
        requirement_id: str | None = None,
        seller_id: str | None = None,
        status: OfferStatus | str | None = None,
    ) -> list[dict[str, Any]]:
        results = list(self.offers.values())
        if requirement_id is not None:
            results = [o for o in results if o["requirement_id"] == requirement_id]
        if seller_id is not None:
            results = [o for o in results if o["seller_id"] == seller_id]
        if status is not None:
            wanted = OfferStatus(status).value
            results = [o for o in results if o["status"] == wanted]
        return sorted(results, key=lambda o: o["created_at"])

    def latest_log_entry(
        self, offer_id: str, kinds: set[str] | None = None
    ) -> dict[str, Any] | None:
        """
        Most recent log entry, optionally of the given event types

        This is what the UI shows as the rejection reason or the admin's
        latest feedback.
        """
        for entry in reversed(self.offers[offer_id]["communication_log"]):
            if kinds is None or entry["event_type"] in kinds:
                return entry
        return None

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in OfferStatus}
        for offer in self.offers.values():
            counts[offer["status"]] += 1
        return counts


class CommitmentLedger:
    """
    Commitment ledger projection

    Append-only: commitments are added, never changed or removed (except
    when a whole stream is discarded to be replayed).
    A commitment id or offer seen twice is refused rather than overwritten.
    """

    def __init__(self) -> None:
        self.commitments: dict[str, dict[str, Any]] = {}
        self._by_offer: dict[str, str] = {}

    def apply_event(self, event: Event) -> None:
        if event.event_type != "CommitmentRecorded":
            return
        payload = event.payload
        commitment = {
            "commitment_id": payload["commitment_id"],
            "requirement_id": payload["requirement_id"],
            "offer_id": payload["offer_id"],
            "seller_id": payload["seller_id"],
            "volume": Decimal(str(payload["volume"])),
            "unit": payload["unit"],
            "recorded_at": payload["recorded_at"],
        }
        if commitment["commitment_id"] in self.commitments:
            raise DuplicateCommitment(commitment["offer_id"], commitment["commitment_id"])
        if commitment["offer_id"] in self._by_offer:
            raise DuplicateCommitment(commitment["offer_id"])
        self.commitments[commitment["commitment_id"]] = commitment
        self._by_offer[commitment["offer_id"]] = commitment["commitment_id"]

    def discard_stream(self, requirement_id: str) -> None:
        for commitment_id in [
            cid for cid, c in list(self.commitments.items()) if c["requirement_id"] == requirement_id
        ]:
            commitment = self.commitments.pop(commitment_id)
            self._by_offer.pop(commitment["offer_id"], None)

    def commitments_for(self, requirement_id: str) -> list[dict[str, Any]]:
        return sorted(
            (c for c in list(self.commitments.values()) if c["requirement_id"] == requirement_id),
            key=lambda c: c["recorded_at"],
        )

    def total_committed(self, requirement_id: str) -> Decimal:
        return sum(
            (
                c["volume"]
                for c in list(self.commitments.values())
                if c["requirement_id"] == requirement_id
            ),
            Decimal("0"),
        )

    def has_commitment(self, offer_id: str) -> bool:
        return offer_id in self._by_offer

    def get_for_offer(self, offer_id: str) -> dict[str, Any] | None:
        commitment_id = self._by_offer.get(offer_id)
        return self.commitments.get(commitment_id) if commitment_id else None

    def is_fulfilled(self, requirement_id: str, total_volume: Decimal) -> bool:
        return self.total_committed(requirement_id) >= total_volume

    def to_dict(self, requirement_id: str, total_volume: Decimal) -> dict[str, Any]:
        committed = self.total_committed(requirement_id)
        return {
            "requirement_id": requirement_id,
            "total_volume": str(total_volume),
            "committed": str(committed),
            "remaining": str(max(total_volume - committed, Decimal("0"))),
            "fulfilled": committed >= total_volume,
            "commitments": [
                {**c, "volume": str(c["volume"])} for c in self.commitments_for(requirement_id)
            ],
        }
