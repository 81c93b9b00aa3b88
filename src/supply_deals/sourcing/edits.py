"""
Proposed edits

An edit waiting for the other party's approval is stored next to the live
content and merged only when approved. Each entity kind has its own edit
type listing the fields that may change; the ``kind`` tag makes the stored
payload self-describing.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from supply_deals.sourcing.models import (
    FileAttachment,
    OfferContent,
    RequirementContent,
    TechnicalSpec,
)
from supply_deals.sourcing.pricing import PriceComponent
from supply_deals.sourcing.terms import OfferTerms


class RequirementEdit(BaseModel):
    """Changes to a requirement; None means "leave as is" """

    kind: Literal["requirement"] = "requirement"
    category: str | None = None
    subcategory: str | None = None
    presentation: str | None = None
    total_volume: Decimal | None = None
    unit: str | None = None
    frequency: str | None = None
    quality: TechnicalSpec | None = None
    logistics: TechnicalSpec | None = None
    freight_terms: str | None = None
    delivery_department: str | None = None
    delivery_city: str | None = None
    price_formula: list[PriceComponent] | None = None
    payment_type: str | None = None
    payment_method: str | None = None
    advance_percentage: Decimal | None = None
    valid_from: date | None = None
    valid_until: date | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True, exclude={"kind"})


class OfferEdit(BaseModel):
    """Changes to an offer; None means "leave as is" """

    kind: Literal["offer"] = "offer"
    volume: Decimal | None = None
    supply_frequency: str | None = None
    vehicle_type: str | None = None
    terms: OfferTerms | None = None
    valid_from: date | None = None
    valid_until: date | None = None
    photos: list[FileAttachment] | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True, exclude={"kind"})


ProposedEdit = Annotated[Union[RequirementEdit, OfferEdit], Field(discriminator="kind")]

proposed_edit_adapter: TypeAdapter[RequirementEdit | OfferEdit] = TypeAdapter(ProposedEdit)


def load_proposed_edit(data: dict[str, Any]) -> RequirementEdit | OfferEdit:
    """Rebuild a stored edit from its tagged payload"""
    return proposed_edit_adapter.validate_python(data)


def merge_requirement_edit(
    content: RequirementContent, edit: RequirementEdit
) -> RequirementContent:
    merged = content.model_dump(mode="json")
    merged.update(edit.changes())
    return RequirementContent.model_validate(merged)


def merge_offer_edit(content: OfferContent, edit: OfferEdit) -> OfferContent:
    merged = content.model_dump(mode="json")
    merged.update(edit.changes())
    return OfferContent.model_validate(merged)
