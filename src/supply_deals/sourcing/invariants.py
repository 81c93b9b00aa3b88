"""
Sourcing invariants

Pure validation functions. Handlers call them before building any event, so
a failed check means nothing was written.

Fun fact: Incoterms, the trade terms every freight contract leans on, were
first published by the International Chamber of Commerce in 1936 - because
"delivered" meant something different in every port!
"""

from datetime import date
from decimal import Decimal

from supply_deals.kernel.errors import (
    CommitmentExceedsVolume,
    InvalidDateWindow,
    MissingCounterProposal,
    NonPositiveQuantity,
    OfferWindowOutsideRequirement,
    OwnershipViolation,
    PenaltyFeeNotAccepted,
    ReasonRequired,
    VolumeBelowCommitted,
)
from supply_deals.sourcing.models import OfferContent, RequirementContent


def require_reason(reason: str | None, operation: str) -> str:
    """
    Return the stripped reason

    Raises:
        ReasonRequired: If reason is missing or blank
    """
    if reason is None or not reason.strip():
        raise ReasonRequired(operation)
    return reason.strip()


def validate_positive(value: Decimal, field: str) -> None:
    if value <= 0:
        raise NonPositiveQuantity(field, value)


def validate_window(start: date, end: date, context: str) -> None:
    if end < start:
        raise InvalidDateWindow(start, end, context)


def validate_requirement_content(content: RequirementContent) -> None:
    """
    Raises:
        NonPositiveQuantity: total_volume <= 0
        InvalidDateWindow: valid_until before valid_from
    """
    validate_positive(content.total_volume, "total_volume")
    validate_window(content.valid_from, content.valid_until, "Requirement validity")


def validate_offer_window(
    offer: OfferContent,
    requirement: RequirementContent,
    today: date,
    allow_expired_override: bool = False,
) -> None:
    """
    Offer validity must sit inside the requirement validity

    The upper bound is dropped only when allow_expired_override is set and
    the requirement window has already closed.

    Raises:
        InvalidDateWindow: Offer window inverted
        OfferWindowOutsideRequirement: Offer window outside the requirement's
    """
    validate_window(offer.valid_from, offer.valid_until, "Offer validity")

    upper_bound: date | None = requirement.valid_until
    if allow_expired_override and requirement.valid_until < today:
        upper_bound = None

    too_early = offer.valid_from < requirement.valid_from
    too_late = upper_bound is not None and offer.valid_until > upper_bound
    if too_early or too_late:
        raise OfferWindowOutsideRequirement(
            (offer.valid_from, offer.valid_until),
            (requirement.valid_from, requirement.valid_until),
        )


def validate_offer_content(
    offer: OfferContent,
    requirement: RequirementContent,
    today: date,
    allow_expired_override: bool = False,
) -> None:
    """
    Full submission check for an offer

    Raises:
        NonPositiveQuantity, InvalidDateWindow, OfferWindowOutsideRequirement,
        MissingCounterProposal, PenaltyFeeNotAccepted
    """
    validate_positive(offer.volume, "volume")
    validate_offer_window(offer, requirement, today, allow_expired_override)

    missing = offer.terms.missing_counter_proposals()
    if missing:
        raise MissingCounterProposal(missing)

    if not offer.penalty_fee_accepted:
        raise PenaltyFeeNotAccepted()


def validate_commitment_fits(
    requirement_id: str,
    committed: Decimal,
    volume: Decimal,
    total_volume: Decimal,
) -> None:
    """
    Raises:
        CommitmentExceedsVolume: committed + volume > total_volume
    """
    if committed + volume > total_volume:
        raise CommitmentExceedsVolume(requirement_id, committed, volume, total_volume)


def validate_volume_covers_commitments(
    requirement_id: str, new_total: Decimal, committed: Decimal
) -> None:
    """
    Raises:
        VolumeBelowCommitted: A requirement cannot shrink under what is secured
    """
    if new_total < committed:
        raise VolumeBelowCommitted(requirement_id, new_total, committed)


def require_owner(entity_kind: str, entity_id: str, owner_id: str, actor_id: str) -> None:
    if owner_id != actor_id:
        raise OwnershipViolation(entity_kind, entity_id, actor_id)
