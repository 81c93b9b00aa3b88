"""
Sourcing commands

Commands carry what the caller wants; the desk stamps who (actor_id) and
when, and the handlers decide whether it is allowed.
"""

from pydantic import BaseModel, Field

from supply_deals.sourcing.edits import OfferEdit, RequirementEdit
from supply_deals.sourcing.models import (
    OfferContent,
    OfferStatus,
    RequirementContent,
    RequirementStatus,
    SellerReplyAction,
)


# ============================================================================
# Requirement Commands
# ============================================================================


class CreateRequirement(BaseModel):
    """Buyer files a requirement; it waits for moderation"""

    content: RequirementContent


class CreateRequirementOnBehalf(BaseModel):
    """Admin files a requirement for a buyer, who must confirm it"""

    buyer_id: str
    content: RequirementContent


class ApproveRequirement(BaseModel):
    requirement_id: str


class RejectRequirement(BaseModel):
    requirement_id: str
    reason: str = Field(..., description="Shown to the buyer")


class ReturnRequirementForEdit(BaseModel):
    """Admin sends a requirement back to its buyer with feedback"""

    requirement_id: str
    reason: str


class ResubmitRequirement(BaseModel):
    requirement_id: str
    content: RequirementContent


class ConfirmRequirement(BaseModel):
    """Buyer accepts a requirement an admin drafted for them"""

    requirement_id: str


class DeclineRequirement(BaseModel):
    requirement_id: str
    reason: str | None = None


class RequestRequirementEdit(BaseModel):
    """Buyer asks to change a live requirement; an admin decides"""

    requirement_id: str
    edit: RequirementEdit


class ProposeRequirementEdit(BaseModel):
    """Admin proposes a change; the buyer decides"""

    requirement_id: str
    edit: RequirementEdit


class DecideRequirementEdit(BaseModel):
    """
    Approve or discard the parked edit

    Whoever did not propose it decides: the admin for buyer requests, the
    buyer for admin proposals.
    """

    requirement_id: str
    approve: bool


class RequestRequirementDeletion(BaseModel):
    requirement_id: str
    reason: str | None = None


class DecideRequirementDeletion(BaseModel):
    requirement_id: str
    approve: bool
    note: str | None = None


class DecideQuantityIncrease(BaseModel):
    requirement_id: str
    approve: bool
    reason: str | None = Field(default=None, description="Required when rejecting")


class HideRequirement(BaseModel):
    requirement_id: str
    reason: str | None = None


class ReactivateRequirement(BaseModel):
    requirement_id: str
    reason: str | None = None


class ForceRequirementStatus(BaseModel):
    """Break-glass override; bypasses the transition table"""

    requirement_id: str
    status: RequirementStatus
    reason: str


# ============================================================================
# Offer Commands
# ============================================================================


class CreateOffer(BaseModel):
    requirement_id: str
    content: OfferContent


class CreateOfferOnBehalf(BaseModel):
    """Admin suggests an offer for a seller, who must confirm it"""

    requirement_id: str
    seller_id: str
    content: OfferContent
    override_expired_window: bool = Field(
        default=False,
        description="Allow validity past the requirement's end when that end has passed",
    )


class ApproveOffer(BaseModel):
    """Moderation approval: the offer goes to the buyer"""

    offer_id: str


class RejectOffer(BaseModel):
    offer_id: str
    reason: str


class ReturnOfferForEdit(BaseModel):
    offer_id: str
    reason: str


class RequestSellerAction(BaseModel):
    """Admin puts the offer on hold with a question for the seller"""

    offer_id: str
    message: str


class SellerRespond(BaseModel):
    offer_id: str
    action: SellerReplyAction
    message: str | None = None


class ReviseOffer(BaseModel):
    """Seller replaces the offer content; it goes back to moderation"""

    offer_id: str
    content: OfferContent


class DecideOfferDeletion(BaseModel):
    offer_id: str
    approve: bool
    note: str | None = None


class ConfirmOffer(BaseModel):
    """Seller accepts an offer an admin suggested for them"""

    offer_id: str


class DeclineOffer(BaseModel):
    offer_id: str
    reason: str | None = None


class ProposeOfferEdit(BaseModel):
    offer_id: str
    edit: OfferEdit


class DecideOfferEdit(BaseModel):
    offer_id: str
    approve: bool


class BuyerApproveOffer(BaseModel):
    offer_id: str


class BuyerRejectOffer(BaseModel):
    offer_id: str
    reason: str


class AdminRespond(BaseModel):
    offer_id: str
    message: str


class HideOffer(BaseModel):
    offer_id: str
    reason: str | None = None


class ForceOfferStatus(BaseModel):
    offer_id: str
    status: OfferStatus
    reason: str
