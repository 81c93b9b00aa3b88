"""
Transition tables for requirements and offers

Every status change a handler emits is checked against these tables first.
An edge is (from status, action, to status); actions with more than one
outcome (an admin deciding a deletion request, approving a quantity
increase) have one edge per outcome and the handler picks which.

The admin's break-glass force_status is the only path that bypasses them.
"""

from enum import Enum

from supply_deals.kernel.errors import IllegalTransition
from supply_deals.sourcing.models import (
    TERMINAL_OFFER_STATUSES,
    TERMINAL_REQUIREMENT_STATUSES,
    OfferStatus,
    RequirementStatus,
)


class RequirementAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    RETURN_FOR_EDIT = "RETURN_FOR_EDIT"
    RESUBMIT = "RESUBMIT"
    CONFIRM = "CONFIRM"
    DECLINE = "DECLINE"
    REQUEST_EDIT = "REQUEST_EDIT"
    DECIDE_OWNER_EDIT = "DECIDE_OWNER_EDIT"
    PROPOSE_EDIT = "PROPOSE_EDIT"
    DECIDE_ADMIN_EDIT = "DECIDE_ADMIN_EDIT"
    REQUEST_DELETION = "REQUEST_DELETION"
    DECIDE_DELETION = "DECIDE_DELETION"
    OPEN_QUANTITY_INCREASE = "OPEN_QUANTITY_INCREASE"
    APPROVE_QUANTITY_INCREASE = "APPROVE_QUANTITY_INCREASE"
    REJECT_QUANTITY_INCREASE = "REJECT_QUANTITY_INCREASE"
    COMPLETE = "COMPLETE"
    HIDE = "HIDE"
    REACTIVATE = "REACTIVATE"


class OfferAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    RETURN_FOR_EDIT = "RETURN_FOR_EDIT"
    REQUEST_SELLER_ACTION = "REQUEST_SELLER_ACTION"
    SELLER_REPLY = "SELLER_REPLY"
    REQUEST_EDIT = "REQUEST_EDIT"
    REQUEST_DELETION = "REQUEST_DELETION"
    REVISE = "REVISE"
    DECIDE_DELETION = "DECIDE_DELETION"
    CONFIRM = "CONFIRM"
    DECLINE = "DECLINE"
    PROPOSE_EDIT = "PROPOSE_EDIT"
    DECIDE_ADMIN_EDIT = "DECIDE_ADMIN_EDIT"
    BUYER_APPROVE = "BUYER_APPROVE"
    BUYER_REJECT = "BUYER_REJECT"
    APPROVE_QUANTITY_INCREASE = "APPROVE_QUANTITY_INCREASE"
    REJECT_QUANTITY_INCREASE = "REJECT_QUANTITY_INCREASE"
    ADMIN_RESPOND = "ADMIN_RESPOND"
    HIDE = "HIDE"


R = RequirementStatus
RA = RequirementAction

REQUIREMENT_TRANSITIONS: frozenset[tuple[R, RA, R]] = frozenset(
    {
        (R.PENDING_ADMIN, RA.APPROVE, R.ACTIVE),
        (R.PENDING_ADMIN, RA.REJECT, R.REJECTED),
        (R.PENDING_ADMIN, RA.RETURN_FOR_EDIT, R.PENDING_EDIT),
        (R.PENDING_EDIT, RA.RESUBMIT, R.PENDING_ADMIN),
        (R.PENDING_BUYER_APPROVAL, RA.CONFIRM, R.ACTIVE),
        (R.PENDING_BUYER_APPROVAL, RA.DECLINE, R.CANCELLED),
        (R.ACTIVE, RA.REQUEST_EDIT, R.PENDING_EDIT),
        (R.PENDING_EDIT, RA.DECIDE_OWNER_EDIT, R.ACTIVE),
        (R.ACTIVE, RA.PROPOSE_EDIT, R.WAITING_FOR_OWNER_EDIT_APPROVAL),
        (R.WAITING_FOR_OWNER_EDIT_APPROVAL, RA.DECIDE_ADMIN_EDIT, R.ACTIVE),
        (R.ACTIVE, RA.REQUEST_DELETION, R.PENDING_DELETION),
        (R.PENDING_ADMIN, RA.REQUEST_DELETION, R.PENDING_DELETION),
        (R.PENDING_DELETION, RA.DECIDE_DELETION, R.CANCELLED),
        (R.PENDING_DELETION, RA.DECIDE_DELETION, R.ACTIVE),
        (R.PENDING_DELETION, RA.DECIDE_DELETION, R.PENDING_ADMIN),
        (R.ACTIVE, RA.OPEN_QUANTITY_INCREASE, R.PENDING_QUANTITY_INCREASE),
        (R.PENDING_QUANTITY_INCREASE, RA.APPROVE_QUANTITY_INCREASE, R.ACTIVE),
        (R.PENDING_QUANTITY_INCREASE, RA.APPROVE_QUANTITY_INCREASE, R.COMPLETED),
        (R.PENDING_QUANTITY_INCREASE, RA.REJECT_QUANTITY_INCREASE, R.ACTIVE),
        (R.ACTIVE, RA.COMPLETE, R.COMPLETED),
    }
    | {
        (status, RA.HIDE, R.HIDDEN_BY_ADMIN)
        for status in R
        if status not in TERMINAL_REQUIREMENT_STATUSES
    }
    | {(status, RA.REACTIVATE, R.ACTIVE) for status in TERMINAL_REQUIREMENT_STATUSES}
)

O = OfferStatus
OA = OfferAction

_SELLER_REQUEST_SOURCES = (O.PENDING_SELLER_ACTION, O.PENDING_ADMIN, O.PENDING_BUYER)
_SELLER_EDITABLE = (O.PENDING_ADMIN, O.PENDING_BUYER, O.PENDING_EDIT)

OFFER_TRANSITIONS: frozenset[tuple[O, OA, O]] = frozenset(
    {
        (O.PENDING_ADMIN, OA.APPROVE, O.PENDING_BUYER),
        (O.PENDING_ADMIN, OA.REJECT, O.REJECTED),
        (O.PENDING_ADMIN, OA.RETURN_FOR_EDIT, O.PENDING_EDIT),
        (O.PENDING_ADMIN, OA.REQUEST_SELLER_ACTION, O.PENDING_SELLER_ACTION),
        (O.PENDING_BUYER, OA.REQUEST_SELLER_ACTION, O.PENDING_SELLER_ACTION),
        (O.PENDING_SELLER_ACTION, OA.SELLER_REPLY, O.PENDING_SELLER_ACTION),
        (O.PENDING_DELETION, OA.DECIDE_DELETION, O.HIDDEN_BY_ADMIN),
        (O.PENDING_DELETION, OA.DECIDE_DELETION, O.PENDING_ADMIN),
        (O.PENDING_SELLER_APPROVAL, OA.CONFIRM, O.PENDING_BUYER),
        (O.PENDING_SELLER_APPROVAL, OA.DECLINE, O.HIDDEN_BY_ADMIN),
        (O.PENDING_BUYER, OA.PROPOSE_EDIT, O.WAITING_FOR_OWNER_EDIT_APPROVAL),
        (O.WAITING_FOR_OWNER_EDIT_APPROVAL, OA.DECIDE_ADMIN_EDIT, O.PENDING_BUYER),
        (O.PENDING_BUYER, OA.BUYER_APPROVE, O.APPROVED),
        (O.PENDING_BUYER, OA.BUYER_REJECT, O.REJECTED),
        (O.PENDING_BUYER, OA.APPROVE_QUANTITY_INCREASE, O.APPROVED),
        (O.PENDING_BUYER, OA.REJECT_QUANTITY_INCREASE, O.REJECTED),
    }
    | {(status, OA.REQUEST_EDIT, O.PENDING_EDIT) for status in _SELLER_REQUEST_SOURCES}
    | {(status, OA.REQUEST_DELETION, O.PENDING_DELETION) for status in _SELLER_REQUEST_SOURCES}
    | {(status, OA.REVISE, O.PENDING_ADMIN) for status in _SELLER_EDITABLE}
    | {
        (status, OA.ADMIN_RESPOND, status)
        for status in O
        if status not in TERMINAL_OFFER_STATUSES
    }
    | {(status, OA.HIDE, O.HIDDEN_BY_ADMIN) for status in O if status != O.HIDDEN_BY_ADMIN}
)


def require_requirement_transition(
    requirement_id: str,
    current: RequirementStatus,
    action: RequirementAction,
    target: RequirementStatus,
) -> None:
    """
    Raises:
        IllegalTransition: If (current, action, target) is not a table edge
    """
    current = RequirementStatus(current)
    if (current, action, target) not in REQUIREMENT_TRANSITIONS:
        raise IllegalTransition("Requirement", requirement_id, current.value, action.value)


def require_offer_transition(
    offer_id: str,
    current: OfferStatus,
    action: OfferAction,
    target: OfferStatus,
) -> None:
    """
    Raises:
        IllegalTransition: If (current, action, target) is not a table edge
    """
    current = OfferStatus(current)
    if (current, action, target) not in OFFER_TRANSITIONS:
        raise IllegalTransition("Offer", offer_id, current.value, action.value)


def requirement_actions(status: RequirementStatus) -> set[RequirementAction]:
    """Actions available from a requirement status"""
    return {action for source, action, _ in REQUIREMENT_TRANSITIONS if source == status}


def offer_actions(status: OfferStatus) -> set[OfferAction]:
    """Actions available from an offer status"""
    return {action for source, action, _ in OFFER_TRANSITIONS if source == status}


def allows_requirement(status: RequirementStatus, action: RequirementAction) -> bool:
    return action in requirement_actions(status)


def allows_offer(status: OfferStatus, action: OfferAction) -> bool:
    return action in offer_actions(status)
