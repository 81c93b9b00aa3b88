"""
Sourcing domain models

Requirement = what a buyer needs on a recurring basis (material, volume,
frequency, quality/logistics conditions, price formula, payment terms).
Offer = a seller's answer to one requirement, clause by clause.

Statuses are closed enums; which status may follow which lives in
transitions.py.

Fun fact: Paper recycling in Colombia runs largely through "recicladores de
oficio" - informal collectors whose material reaches mills via intermediaries.
Recurring-supply contracts are how that chain gets a predictable price!
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from supply_deals.sourcing.pricing import PriceComponent, reject_duplicate_names
from supply_deals.sourcing.terms import OfferTerms


class RequirementStatus(str, Enum):
    PENDING_ADMIN = "PENDING_ADMIN"
    PENDING_BUYER_APPROVAL = "PENDING_BUYER_APPROVAL"
    ACTIVE = "ACTIVE"
    PENDING_EDIT = "PENDING_EDIT"
    WAITING_FOR_OWNER_EDIT_APPROVAL = "WAITING_FOR_OWNER_EDIT_APPROVAL"
    PENDING_DELETION = "PENDING_DELETION"
    PENDING_QUANTITY_INCREASE = "PENDING_QUANTITY_INCREASE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    HIDDEN_BY_ADMIN = "HIDDEN_BY_ADMIN"


TERMINAL_REQUIREMENT_STATUSES = frozenset(
    {
        RequirementStatus.COMPLETED,
        RequirementStatus.CANCELLED,
        RequirementStatus.REJECTED,
        RequirementStatus.HIDDEN_BY_ADMIN,
    }
)


class OfferStatus(str, Enum):
    PENDING_ADMIN = "PENDING_ADMIN"
    PENDING_SELLER_APPROVAL = "PENDING_SELLER_APPROVAL"
    PENDING_BUYER = "PENDING_BUYER"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PENDING_EDIT = "PENDING_EDIT"
    PENDING_DELETION = "PENDING_DELETION"
    PENDING_SELLER_ACTION = "PENDING_SELLER_ACTION"
    WAITING_FOR_OWNER_EDIT_APPROVAL = "WAITING_FOR_OWNER_EDIT_APPROVAL"
    HIDDEN_BY_ADMIN = "HIDDEN_BY_ADMIN"


TERMINAL_OFFER_STATUSES = frozenset(
    {OfferStatus.APPROVED, OfferStatus.REJECTED, OfferStatus.HIDDEN_BY_ADMIN}
)


class Party(str, Enum):
    """Who wrote a communication log entry"""

    BUYER = "BUYER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class CommunicationEventType(str, Enum):
    BUYER_REJECTION = "BUYER_REJECTION"
    ADMIN_FEEDBACK = "ADMIN_FEEDBACK"
    SELLER_RESPONSE = "SELLER_RESPONSE"
    ADMIN_REJECTION = "ADMIN_REJECTION"
    ADMIN_RESPONSE = "ADMIN_RESPONSE"


class SellerReplyAction(str, Enum):
    """What a seller does when the admin puts an offer on hold"""

    REPLY = "reply"
    REQUEST_EDIT = "request_edit"
    REQUEST_DELETE = "request_delete"


class CommunicationEntry(BaseModel):
    """One message on an offer's communication log"""

    entry_id: str
    author: Party
    author_id: str
    message: str = Field(..., min_length=1)
    timestamp: datetime
    event_type: CommunicationEventType


class FileAttachment(BaseModel):
    """Opaque handle to an uploaded file; storage lives elsewhere"""

    name: str = Field(..., min_length=1)
    content: str = Field(..., description="Storage reference or encoded content")


class TechnicalSpec(BaseModel):
    """
    Free-text conditions plus an optional supporting document

    The document is either an uploaded attachment or a link, never both.
    """

    description: str = Field(..., min_length=1)
    attachment: FileAttachment | None = None
    url: str | None = None

    @model_validator(mode="after")
    def attachment_or_url(self) -> "TechnicalSpec":
        if self.attachment is not None and self.url:
            raise ValueError("provide either an attachment or a URL, not both")
        return self


class RequirementContent(BaseModel):
    """Buyer-editable part of a requirement"""

    category: str = Field(..., min_length=1, description="Material category")
    subcategory: str | None = Field(default=None, description="Material subcategory")
    presentation: str = Field(..., min_length=1, description="Bales, loose, ground, ...")
    total_volume: Decimal = Field(..., description="Volume to secure over the window")
    unit: str = Field(..., min_length=1)
    frequency: str = Field(..., min_length=1, description="Delivery frequency")
    quality: TechnicalSpec
    logistics: TechnicalSpec
    freight_terms: str | None = Field(default=None, description="How freight is charged")
    delivery_department: str = Field(..., min_length=1)
    delivery_city: str = Field(..., min_length=1)
    currency: str = Field(default="COP", min_length=3, max_length=3)
    price_formula: list[PriceComponent] = Field(..., min_length=1)
    payment_type: str = Field(..., min_length=1)
    payment_method: str = Field(..., min_length=1)
    advance_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    valid_from: date
    valid_until: date
    management_fee_accepted: bool = False

    @field_validator("price_formula")
    @classmethod
    def unique_component_names(cls, v: list[PriceComponent]) -> list[PriceComponent]:
        reject_duplicate_names([c.name for c in v])
        return v

    @property
    def title(self) -> str:
        return requirement_title(self.subcategory or self.category, self.total_volume, self.unit)


class OfferContent(BaseModel):
    """Seller-editable part of an offer"""

    volume: Decimal = Field(..., description="Volume offered over the window")
    supply_frequency: str = Field(..., min_length=1)
    vehicle_type: str = Field(..., min_length=1)
    terms: OfferTerms = Field(default_factory=OfferTerms)
    valid_from: date
    valid_until: date
    photos: list[FileAttachment] = Field(default_factory=list)
    penalty_fee_accepted: bool = False


def requirement_title(material: str, volume: Decimal, unit: str) -> str:
    """Display title: "<material> - <volume> <unit>" """
    return f"{material} - {volume.normalize():f} {unit}"
