"""
Sourcing events

All events of a requirement, its offers and its commitments share the
requirement's stream. Plain status moves share one payload shape
(RequirementStatusChanged / OfferStatusChanged) and are told apart by
event_type, named after the action that caused them.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from supply_deals.sourcing.transitions import OfferAction, RequirementAction

REQUIREMENT_STREAM = "requirement"


# ============================================================================
# Requirement Events
# ============================================================================


class RequirementCreated(BaseModel):
    """Requirement filed by its buyer, or by an admin on the buyer's behalf"""

    requirement_id: str
    buyer_id: str
    content: dict[str, Any] = Field(..., description="RequirementContent (JSON)")
    title: str
    management_fee_per_kg: Decimal
    status: str
    created_by_admin: bool = False
    created_at: datetime
    created_by: str


class RequirementStatusChanged(BaseModel):
    """Status move with no content change"""

    requirement_id: str
    action: str
    from_status: str
    to_status: str
    reason: str | None = None
    changed_at: datetime


class RequirementResubmitted(BaseModel):
    """Owner answered a "return for edit" with new content"""

    requirement_id: str
    content: dict[str, Any]
    title: str
    management_fee_per_kg: Decimal
    from_status: str
    to_status: str
    resubmitted_at: datetime


class RequirementEditProposed(BaseModel):
    """Edit parked for the other party's approval"""

    requirement_id: str
    edit: dict[str, Any] = Field(..., description="RequirementEdit (tagged JSON)")
    proposed_by: str = Field(..., description="BUYER or ADMIN")
    from_status: str
    to_status: str
    proposed_at: datetime


class RequirementEditDecided(BaseModel):
    """Parked edit merged (approved) or discarded"""

    requirement_id: str
    approved: bool
    content: dict[str, Any] | None = Field(
        default=None, description="Merged content, only when approved"
    )
    title: str | None = None
    management_fee_per_kg: Decimal | None = None
    from_status: str
    to_status: str
    decided_at: datetime


class QuantityIncreaseRequested(BaseModel):
    """Buyer approved an offer that does not fit the remaining volume"""

    requirement_id: str
    offer_id: str
    current_total: Decimal
    committed: Decimal
    requested_total: Decimal
    from_status: str
    to_status: str
    requested_at: datetime


class QuantityIncreaseDecided(BaseModel):
    """Admin ruling on a pending quantity increase"""

    requirement_id: str
    offer_id: str
    approved: bool
    new_total: Decimal | None = None
    title: str | None = None
    management_fee_per_kg: Decimal | None = None
    reason: str | None = None
    from_status: str
    to_status: str
    decided_at: datetime


class StatusForced(BaseModel):
    """Admin break-glass override, outside the transition table"""

    entity_kind: str = Field(..., description="Requirement or Offer")
    entity_id: str
    requirement_id: str
    from_status: str
    to_status: str
    reason: str
    forced_at: datetime


class EditApprovalOverdue(BaseModel):
    """Reminder: an admin-proposed edit has waited too long for its owner"""

    entity_kind: str
    entity_id: str
    requirement_id: str
    waiting_since: datetime
    days_waiting: int
    detected_at: datetime


# ============================================================================
# Offer Events
# ============================================================================


class OfferCreated(BaseModel):
    """Offer filed by its seller, or suggested by an admin"""

    offer_id: str
    requirement_id: str
    seller_id: str
    content: dict[str, Any] = Field(..., description="OfferContent (JSON)")
    unit: str = Field(..., description="Copied from the requirement")
    penalty_fee_per_kg: Decimal
    status: str
    created_by_admin: bool = False
    created_at: datetime
    created_by: str


class OfferStatusChanged(BaseModel):
    """Status move, optionally with a communication log entry"""

    offer_id: str
    requirement_id: str
    action: str
    from_status: str
    to_status: str
    reason: str | None = None
    log_entry: dict[str, Any] | None = Field(
        default=None, description="CommunicationEntry appended to the offer's log"
    )
    changed_at: datetime


class OfferRevised(BaseModel):
    """Seller replaced the offer content; back to moderation"""

    offer_id: str
    requirement_id: str
    content: dict[str, Any]
    from_status: str
    to_status: str
    revised_at: datetime


class OfferEditProposed(BaseModel):
    offer_id: str
    requirement_id: str
    edit: dict[str, Any] = Field(..., description="OfferEdit (tagged JSON)")
    from_status: str
    to_status: str
    proposed_at: datetime


class OfferEditDecided(BaseModel):
    offer_id: str
    requirement_id: str
    approved: bool
    content: dict[str, Any] | None = None
    from_status: str
    to_status: str
    decided_at: datetime


# ============================================================================
# Ledger Events
# ============================================================================


class CommitmentRecorded(BaseModel):
    """Volume secured by an approved offer. Never amended."""

    commitment_id: str
    requirement_id: str
    offer_id: str
    seller_id: str
    volume: Decimal
    unit: str
    recorded_at: datetime


# ============================================================================
# Event type names
# ============================================================================

REQUIREMENT_STATUS_EVENT_TYPES: dict[RequirementAction, str] = {
    RequirementAction.APPROVE: "RequirementApproved",
    RequirementAction.REJECT: "RequirementRejected",
    RequirementAction.RETURN_FOR_EDIT: "RequirementReturnedForEdit",
    RequirementAction.CONFIRM: "RequirementConfirmed",
    RequirementAction.DECLINE: "RequirementDeclined",
    RequirementAction.REQUEST_DELETION: "RequirementDeletionRequested",
    RequirementAction.DECIDE_DELETION: "RequirementDeletionDecided",
    RequirementAction.COMPLETE: "RequirementCompleted",
    RequirementAction.HIDE: "RequirementHidden",
    RequirementAction.REACTIVATE: "RequirementReactivated",
}

OFFER_STATUS_EVENT_TYPES: dict[OfferAction, str] = {
    OfferAction.APPROVE: "OfferApprovedByAdmin",
    OfferAction.REJECT: "OfferRejectedByAdmin",
    OfferAction.RETURN_FOR_EDIT: "OfferReturnedForEdit",
    OfferAction.REQUEST_SELLER_ACTION: "SellerActionRequested",
    OfferAction.SELLER_REPLY: "SellerReplied",
    OfferAction.REQUEST_EDIT: "OfferEditRequested",
    OfferAction.REQUEST_DELETION: "OfferDeletionRequested",
    OfferAction.DECIDE_DELETION: "OfferDeletionDecided",
    OfferAction.CONFIRM: "OfferConfirmedBySeller",
    OfferAction.DECLINE: "OfferDeclinedBySeller",
    OfferAction.BUYER_APPROVE: "OfferApprovedByBuyer",
    OfferAction.BUYER_REJECT: "OfferRejectedByBuyer",
    OfferAction.APPROVE_QUANTITY_INCREASE: "OfferApprovedOnQuantityIncrease",
    OfferAction.REJECT_QUANTITY_INCREASE: "OfferRejectedOnQuantityIncrease",
    OfferAction.ADMIN_RESPOND: "AdminResponded",
    OfferAction.HIDE: "OfferHidden",
}

# Owner asks, admin decides / admin proposes, owner decides
REQUIREMENT_EDIT_REQUESTED = "RequirementEditRequested"
REQUIREMENT_EDIT_PROPOSED = "RequirementEditProposed"
REQUIREMENT_OWNER_EDIT_DECIDED = "RequirementOwnerEditDecided"
REQUIREMENT_EDIT_DECIDED = "RequirementEditDecided"
