"""
Event envelope for event sourcing

Every change to a requirement, its offers, its commitments or a user account
is recorded as one immutable Event. Read models are rebuilt by replaying them.

Fun fact: Double-entry bookkeeping (Pacioli, 1494) never erases a line - it
posts a correcting entry instead. An append-only event log is the same rule
applied to every kind of state!
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Envelope shared by all domain events

    stream_id + version give optimistic locking per aggregate; command_id
    makes a retried command return the events it already produced.
    """

    event_id: str = Field(..., description="Unique event identifier (UUIDv7)")
    stream_id: str = Field(
        ..., description="Aggregate id: a requirement id or a user id"
    )
    stream_type: str = Field(..., description="Aggregate type: 'requirement' or 'user'")
    event_type: str = Field(
        ..., description="Specific event type: 'OfferApprovedByBuyer', 'UserVerified', ..."
    )
    occurred_at: datetime = Field(..., description="UTC timestamp when event occurred")
    actor_id: str | None = Field(
        default=None,
        description="User who triggered the event (None for system events)",
    )
    command_id: str = Field(..., description="Command that caused this event")
    payload: dict = Field(
        default_factory=dict, description="Event-specific data (JSON-serializable)"
    )
    version: int = Field(..., ge=1, description="Stream version after this event")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "M1-REQ-20250115-7KX2QZ9A",
                    "stream_type": "requirement",
                    "event_type": "CommitmentRecorded",
                    "occurred_at": "2025-01-15T10:30:00Z",
                    "actor_id": "buyer-01",
                    "command_id": "cmd-123",
                    "payload": {
                        "commitment_id": "M1-COM-20250115-P0W3Q9ZL",
                        "offer_id": "M1-OFF-20250115-0C4ZK81T",
                        "volume": "60",
                    },
                    "version": 7,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Build an Event with keyword-only arguments"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
