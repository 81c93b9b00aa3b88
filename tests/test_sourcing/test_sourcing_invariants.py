"""
Tests for term negotiation and the pure sourcing invariants
"""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

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
from supply_deals.sourcing.invariants import (
    require_owner,
    require_reason,
    validate_commitment_fits,
    validate_offer_content,
    validate_requirement_content,
    validate_volume_covers_commitments,
)
from supply_deals.sourcing.models import OfferContent, RequirementContent, TechnicalSpec
from supply_deals.sourcing.terms import OfferTerms
from tests.helpers import offer_content, price_counter_terms, requirement_content

TODAY = date(2025, 1, 15)


def make_requirement(**overrides) -> RequirementContent:
    return RequirementContent.model_validate(requirement_content(**overrides))


def make_offer(volume: str = "60", **overrides) -> OfferContent:
    return OfferContent.model_validate(offer_content(volume, **overrides))


def test_terms_default_to_accepting_everything() -> None:
    terms = OfferTerms()
    assert terms.accepts_everything
    assert terms.declined() == []


def test_declined_terms_without_counter_are_reported() -> None:
    terms = OfferTerms.model_validate(
        {
            "quality": {"accepted": False, "counter_proposal": "Humedad 15%"},
            "logistics": {"accepted": False, "counter_proposal": "   "},
            "payment_type": {"accepted": False},
        }
    )

    assert terms.declined() == ["quality", "logistics", "payment_type"]
    assert terms.missing_counter_proposals() == ["logistics", "payment_type"]


def test_price_counter_is_a_structured_table() -> None:
    terms = OfferTerms.model_validate(price_counter_terms(("Base", "780"), observation="neto"))
    assert terms.price_formula.has_counter_proposal
    assert terms.price_formula.counter_proposal.total == Decimal("780")


def test_technical_spec_takes_attachment_or_url() -> None:
    with pytest.raises(ValidationError):
        TechnicalSpec(
            description="Ficha técnica",
            attachment={"name": "ficha.pdf", "content": "blob://1"},
            url="https://example.com/ficha.pdf",
        )


def test_requirement_title_uses_subcategory() -> None:
    assert make_requirement().title == "Cartón Corrugado - 100 Ton"
    assert make_requirement(subcategory=None, total_volume="12.50").title == "Papel y Cartón - 12.5 Ton"


def test_requirement_content_rules() -> None:
    validate_requirement_content(make_requirement())

    with pytest.raises(NonPositiveQuantity):
        validate_requirement_content(make_requirement(total_volume="0"))
    with pytest.raises(InvalidDateWindow):
        validate_requirement_content(make_requirement(valid_from="2025-03-01", valid_until="2025-02-01"))


def test_valid_offer_passes() -> None:
    validate_offer_content(make_offer(), make_requirement(), TODAY)


@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"volume": "0"}, NonPositiveQuantity),
        ({"valid_from": "2025-01-01"}, OfferWindowOutsideRequirement),
        ({"valid_until": "2026-02-15"}, OfferWindowOutsideRequirement),
        ({"valid_from": "2025-06-01", "valid_until": "2025-05-01"}, InvalidDateWindow),
        ({"terms": {"quality": {"accepted": False}}}, MissingCounterProposal),
        ({"terms": {"price_formula": {"accepted": False}}}, MissingCounterProposal),
        ({"penalty_fee_accepted": False}, PenaltyFeeNotAccepted),
    ],
)
def test_offer_rules(overrides: dict, error: type[Exception]) -> None:
    overrides = dict(overrides)
    volume = overrides.pop("volume", "60")
    with pytest.raises(error):
        validate_offer_content(make_offer(volume, **overrides), make_requirement(), TODAY)


def test_expired_window_override_drops_upper_bound_only() -> None:
    expired = make_requirement(valid_from="2024-01-01", valid_until="2024-12-31")
    late_offer = make_offer(valid_from="2024-06-01", valid_until="2025-06-30")

    with pytest.raises(OfferWindowOutsideRequirement):
        validate_offer_content(late_offer, expired, TODAY)
    validate_offer_content(late_offer, expired, TODAY, allow_expired_override=True)

    early_offer = make_offer(valid_from="2023-12-01", valid_until="2025-06-30")
    with pytest.raises(OfferWindowOutsideRequirement):
        validate_offer_content(early_offer, expired, TODAY, allow_expired_override=True)


def test_override_ignored_while_requirement_window_is_open() -> None:
    with pytest.raises(OfferWindowOutsideRequirement):
        validate_offer_content(
            make_offer(valid_until="2026-06-30"),
            make_requirement(),
            TODAY,
            allow_expired_override=True,
        )


def test_commitment_must_fit_total_volume() -> None:
    validate_commitment_fits("M1-REQ-1", Decimal("60"), Decimal("40"), Decimal("100"))
    with pytest.raises(CommitmentExceedsVolume) as exc_info:
        validate_commitment_fits("M1-REQ-1", Decimal("60"), Decimal("50"), Decimal("100"))
    assert exc_info.value.committed == Decimal("60")


def test_volume_cannot_shrink_below_committed() -> None:
    validate_volume_covers_commitments("M1-REQ-1", Decimal("60"), Decimal("60"))
    with pytest.raises(VolumeBelowCommitted):
        validate_volume_covers_commitments("M1-REQ-1", Decimal("59"), Decimal("60"))


def test_reason_is_stripped_and_required() -> None:
    assert require_reason("  sin stock ", "reject offer") == "sin stock"
    for blank in (None, "", "   "):
        with pytest.raises(ReasonRequired):
            require_reason(blank, "reject offer")


def test_owner_check() -> None:
    require_owner("Offer", "M1-OFF-1", "seller-1", "seller-1")
    with pytest.raises(OwnershipViolation):
        require_owner("Offer", "M1-OFF-1", "seller-1", "seller-2")
