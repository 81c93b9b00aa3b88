"""
Tests for the requirement and offer transition tables
"""

import pytest

from supply_deals.kernel.errors import IllegalTransition
from supply_deals.sourcing.models import (
    TERMINAL_REQUIREMENT_STATUSES,
    OfferStatus,
    RequirementStatus,
)
from supply_deals.sourcing.transitions import (
    OfferAction,
    RequirementAction,
    allows_offer,
    allows_requirement,
    offer_actions,
    require_offer_transition,
    require_requirement_transition,
    requirement_actions,
)


def test_admin_moderation_edges() -> None:
    actions = requirement_actions(RequirementStatus.PENDING_ADMIN)
    assert {
        RequirementAction.APPROVE,
        RequirementAction.REJECT,
        RequirementAction.RETURN_FOR_EDIT,
        RequirementAction.REQUEST_DELETION,
    } <= actions
    assert RequirementAction.COMPLETE not in actions


def test_quantity_increase_can_end_active_or_completed() -> None:
    for target in (RequirementStatus.ACTIVE, RequirementStatus.COMPLETED):
        require_requirement_transition(
            "M1-REQ-1",
            RequirementStatus.PENDING_QUANTITY_INCREASE,
            RequirementAction.APPROVE_QUANTITY_INCREASE,
            target,
        )

    with pytest.raises(IllegalTransition):
        require_requirement_transition(
            "M1-REQ-1",
            RequirementStatus.PENDING_QUANTITY_INCREASE,
            RequirementAction.REJECT_QUANTITY_INCREASE,
            RequirementStatus.COMPLETED,
        )


def test_illegal_requirement_transition_names_the_action() -> None:
    with pytest.raises(IllegalTransition) as exc_info:
        require_requirement_transition(
            "M1-REQ-1",
            RequirementStatus.COMPLETED,
            RequirementAction.APPROVE,
            RequirementStatus.ACTIVE,
        )

    assert exc_info.value.current_status == "COMPLETED"
    assert exc_info.value.action == "APPROVE"


def test_every_live_requirement_can_be_hidden() -> None:
    for status in RequirementStatus:
        hideable = allows_requirement(status, RequirementAction.HIDE)
        assert hideable == (status not in TERMINAL_REQUIREMENT_STATUSES)


def test_terminal_requirements_can_only_be_reactivated() -> None:
    for status in TERMINAL_REQUIREMENT_STATUSES:
        assert requirement_actions(status) == {RequirementAction.REACTIVATE}


def test_status_given_as_string_is_accepted() -> None:
    require_requirement_transition(
        "M1-REQ-1", "ACTIVE", RequirementAction.COMPLETE, RequirementStatus.COMPLETED
    )


def test_buyer_decides_only_pending_buyer_offers() -> None:
    for status in OfferStatus:
        assert allows_offer(status, OfferAction.BUYER_APPROVE) == (
            status == OfferStatus.PENDING_BUYER
        )


@pytest.mark.parametrize(
    "status",
    [OfferStatus.PENDING_ADMIN, OfferStatus.PENDING_BUYER, OfferStatus.PENDING_EDIT],
)
def test_seller_revision_goes_back_to_moderation(status: OfferStatus) -> None:
    require_offer_transition("M1-OFF-1", status, OfferAction.REVISE, OfferStatus.PENDING_ADMIN)


def test_approved_offer_is_frozen_except_for_hiding() -> None:
    assert offer_actions(OfferStatus.APPROVED) == {OfferAction.HIDE}

    with pytest.raises(IllegalTransition):
        require_offer_transition(
            "M1-OFF-1", OfferStatus.APPROVED, OfferAction.REVISE, OfferStatus.PENDING_ADMIN
        )


def test_admin_response_keeps_offer_status() -> None:
    require_offer_transition(
        "M1-OFF-1",
        OfferStatus.PENDING_SELLER_ACTION,
        OfferAction.ADMIN_RESPOND,
        OfferStatus.PENDING_SELLER_ACTION,
    )
    assert not allows_offer(OfferStatus.REJECTED, OfferAction.ADMIN_RESPOND)
