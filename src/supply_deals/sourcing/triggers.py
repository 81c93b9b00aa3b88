"""
Sourcing Triggers

Periodic checks run by the desk's tick. They only emit reminder events;
nothing here changes a status.

Fun fact: Before alarm clocks, English mill towns paid "knocker-uppers" to tap
on workers' windows with long poles. They woke you up but never dragged you
to the mill - same contract as these reminders!
"""

from datetime import datetime
from typing import Any

from supply_deals.kernel.events import Event, create_event
from supply_deals.kernel.ids import generate_id
from supply_deals.kernel.policy import MarketplacePolicy
from supply_deals.sourcing import events
from supply_deals.sourcing.models import OfferStatus, RequirementStatus
from supply_deals.sourcing.projections import OfferRegistry, RequirementRegistry

_WAITING = RequirementStatus.WAITING_FOR_OWNER_EDIT_APPROVAL.value
_OFFER_WAITING = OfferStatus.WAITING_FOR_OWNER_EDIT_APPROVAL.value


def _days_waiting(since: str | None, now: datetime) -> int | None:
    if since is None:
        return None
    return (now - datetime.fromisoformat(since)).days


def _overdue(record: dict[str, Any], now: datetime, policy: MarketplacePolicy) -> int | None:
    """Days waiting, if the parked edit is past the reminder threshold and not yet reminded"""
    if record["pending_edits"] is None or record["edit_reminder_sent"]:
        return None
    days = _days_waiting(record["pending_edits_since"], now)
    if days is None or days < policy.edit_approval_reminder_days:
        return None
    return days


def evaluate_stale_edit_approvals(
    requirements: RequirementRegistry,
    offers: OfferRegistry,
    now: datetime,
    policy: MarketplacePolicy,
    command_id: str,
) -> list[Event]:
    """
    Remind owners sitting on admin-proposed edits

    One EditApprovalOverdue per parked edit, emitted once; a new proposal
    resets the reminder. Events are versioned per requirement stream so the
    desk can append each stream's batch as is.

    Returns:
        Reminder events grouped by stream, in stream order
    """
    # stream_id -> [(entity kind, entity id, waiting since, days)]
    pending: dict[str, list[tuple[str, str, str, int]]] = {}

    for requirement in requirements.list_requirements(status=_WAITING):
        days = _overdue(requirement, now, policy)
        if days is not None:
            pending.setdefault(requirement["requirement_id"], []).append(
                ("Requirement", requirement["requirement_id"], requirement["pending_edits_since"], days)
            )

    for offer in offers.list_offers(status=_OFFER_WAITING):
        days = _overdue(offer, now, policy)
        if days is not None:
            pending.setdefault(offer["requirement_id"], []).append(
                ("Offer", offer["offer_id"], offer["pending_edits_since"], days)
            )

    trigger_events = []
    for requirement_id, entries in pending.items():
        version = requirements.get(requirement_id)["version"]
        for entity_kind, entity_id, since, days in entries:
            version += 1
            payload = events.EditApprovalOverdue(
                entity_kind=entity_kind,
                entity_id=entity_id,
                requirement_id=requirement_id,
                waiting_since=datetime.fromisoformat(since),
                days_waiting=days,
                detected_at=now,
            ).model_dump(mode="json")
            trigger_events.append(
                create_event(
                    event_id=generate_id(),
                    stream_id=requirement_id,
                    stream_type=events.REQUIREMENT_STREAM,
                    event_type="EditApprovalOverdue",
                    occurred_at=now,
                    actor_id=None,
                    command_id=command_id,
                    payload=payload,
                    version=version,
                )
            )
    return trigger_events


class TickResult:
    """Outcome of one tick: the reminders emitted, and when"""

    def __init__(self, tick_id: str, tick_at: datetime, triggered_events: list[Event]):
        self.tick_id = tick_id
        self.tick_at = tick_at
        self.triggered_events = triggered_events

    def has_reminders(self) -> bool:
        return bool(self.triggered_events)

    def reminded_entities(self) -> list[str]:
        return [e.payload["entity_id"] for e in self.triggered_events]
