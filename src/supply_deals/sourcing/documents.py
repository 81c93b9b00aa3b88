"""
Document snapshots

Read-only views of a requirement or an offer as one party sees them, ready
for a renderer (PDF, HTML, JSON) to lay out. Counterparties never see each
other's identity or contact: a buyer sees "Proveedor (<city>)" and a seller
sees "Comprador (<city>)". Fees are private to the party who pays them.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from supply_deals.accounts.models import Role
from supply_deals.accounts.projections import UserRegistry
from supply_deals.kernel.policy import MarketplacePolicy
from supply_deals.sourcing.fees import volume_per_delivery
from supply_deals.sourcing.models import OfferContent, RequirementContent
from supply_deals.sourcing.pricing import PriceTableRow, formula_total, reconstruct_price_table
from supply_deals.sourcing.projections import CommitmentLedger
from supply_deals.sourcing.terms import NEGOTIABLE_TERMS

UNKNOWN_USER = "Usuario Desconocido"
PROTECTED_IDENTITY = "Identidad protegida por la plataforma"
_ROLE_LABELS = {Role.BUYER.value: "Comprador", Role.SELLER.value: "Proveedor"}


class PartyDisplay(BaseModel):
    name: str
    subtext: str
    contact_hidden: bool
    email: str | None = None


class ClauseAnswer(BaseModel):
    """How the seller answered one clause of the requirement"""

    term: str
    accepted: bool
    text: str


class RequirementDocument(BaseModel):
    requirement_id: str
    title: str
    status: str
    buyer: PartyDisplay
    category: str
    subcategory: str | None
    presentation: str
    total_volume: Decimal
    unit: str
    frequency: str
    valid_from: date
    valid_until: date
    volume_per_delivery: Decimal
    delivery_city: str
    delivery_department: str
    quality: str
    logistics: str
    freight_terms: str | None
    currency: str
    price_table: list[PriceTableRow]
    price_total: Decimal
    payment_type: str
    payment_method: str
    advance_percentage: Decimal
    committed: Decimal
    remaining: Decimal
    management_fee_per_kg: Decimal | None
    generated_at: datetime


class OfferDocument(BaseModel):
    offer_id: str
    requirement_id: str
    requirement_title: str
    status: str
    seller: PartyDisplay
    buyer: PartyDisplay
    volume: Decimal
    unit: str
    supply_frequency: str
    vehicle_type: str
    valid_from: date
    valid_until: date
    clauses: list[ClauseAnswer]
    currency: str
    price_table: list[PriceTableRow]
    price_total: Decimal
    price_observation: str | None
    has_photos: bool
    penalty_fee_per_kg: Decimal | None
    generated_at: datetime


def public_user_display(target: dict[str, Any] | None, viewer: dict[str, Any]) -> PartyDisplay:
    """
    What ``viewer`` may see of ``target``

    Admins and the user themself see name, city and verification; anyone
    else sees only the role and city.
    """
    if target is None:
        return PartyDisplay(name=UNKNOWN_USER, subtext="", contact_hidden=True)

    if viewer["role"] == Role.ADMIN.value or viewer["user_id"] == target["user_id"]:
        parts = [target.get("city") or ""]
        if target.get("is_verified"):
            parts.append("• Verificado")
        return PartyDisplay(
            name=target["name"],
            subtext=" ".join(p for p in parts if p),
            contact_hidden=False,
            email=target["email"],
        )

    label = _ROLE_LABELS.get(target["role"], "Usuario")
    name = f"{label} ({target['city']})" if target.get("city") else label
    return PartyDisplay(name=name, subtext=PROTECTED_IDENTITY, contact_hidden=True)


def _can_see_private(viewer: dict[str, Any], owner_id: str) -> bool:
    return viewer["role"] == Role.ADMIN.value or viewer["user_id"] == owner_id


def _formula_rows(content: RequirementContent) -> list[PriceTableRow]:
    return [
        PriceTableRow(name=c.name, value=c.value, original_value=c.value, is_new=False)
        for c in content.price_formula
    ]


def build_requirement_document(
    requirement: dict[str, Any],
    ledger: CommitmentLedger,
    users: UserRegistry,
    viewer: dict[str, Any],
    now: datetime,
) -> RequirementDocument:
    content = RequirementContent.model_validate(requirement["content"])
    committed = ledger.total_committed(requirement["requirement_id"])
    show_fee = _can_see_private(viewer, requirement["buyer_id"])

    return RequirementDocument(
        requirement_id=requirement["requirement_id"],
        title=requirement["title"],
        status=requirement["status"],
        buyer=public_user_display(users.get(requirement["buyer_id"]), viewer),
        category=content.category,
        subcategory=content.subcategory,
        presentation=content.presentation,
        total_volume=content.total_volume,
        unit=content.unit,
        frequency=content.frequency,
        valid_from=content.valid_from,
        valid_until=content.valid_until,
        volume_per_delivery=volume_per_delivery(
            content.total_volume, content.valid_from, content.valid_until, content.frequency
        ),
        delivery_city=content.delivery_city,
        delivery_department=content.delivery_department,
        quality=content.quality.description,
        logistics=content.logistics.description,
        freight_terms=content.freight_terms,
        currency=content.currency,
        price_table=_formula_rows(content),
        price_total=formula_total(content.price_formula),
        payment_type=content.payment_type,
        payment_method=content.payment_method,
        advance_percentage=content.advance_percentage,
        committed=committed,
        remaining=max(content.total_volume - committed, Decimal("0")),
        management_fee_per_kg=(
            Decimal(str(requirement["management_fee_per_kg"])) if show_fee else None
        ),
        generated_at=now,
    )


def _clause_text(term: str, offer: OfferContent, requirement: RequirementContent) -> str:
    answer = getattr(offer.terms, term)
    if not answer.accepted:
        if term == "price_formula":
            return "Contrapropuesta de precio"
        return answer.counter_proposal or ""
    accepted_texts = {
        "quality": "Acepta especificaciones del cliente",
        "logistics": "Acepta condiciones",
        "delivery_place": f"Acepta entregar en {requirement.delivery_city}",
        "price_formula": "Acepta la fórmula de precio",
        "payment_type": requirement.payment_type,
        "payment_method": requirement.payment_method,
    }
    return accepted_texts[term]


def build_offer_document(
    offer: dict[str, Any],
    requirement: dict[str, Any],
    users: UserRegistry,
    viewer: dict[str, Any],
    now: datetime,
) -> OfferDocument:
    """
    Offer as ``viewer`` sees it

    An accepted price shows the buyer's formula; a counter-proposal shows the
    seller's table matched back to the buyer's values.
    """
    content = OfferContent.model_validate(offer["content"])
    req_content = RequirementContent.model_validate(requirement["content"])

    price = content.terms.price_formula
    observation = None
    if price.accepted or price.counter_proposal is None:
        rows = _formula_rows(req_content)
    else:
        rows = reconstruct_price_table(price.counter_proposal, req_content.price_formula)
        observation = price.counter_proposal.observation or None

    return OfferDocument(
        offer_id=offer["offer_id"],
        requirement_id=offer["requirement_id"],
        requirement_title=requirement["title"],
        status=offer["status"],
        seller=public_user_display(users.get(offer["seller_id"]), viewer),
        buyer=public_user_display(users.get(requirement["buyer_id"]), viewer),
        volume=content.volume,
        unit=offer["unit"],
        supply_frequency=content.supply_frequency,
        vehicle_type=content.vehicle_type,
        valid_from=content.valid_from,
        valid_until=content.valid_until,
        clauses=[
            ClauseAnswer(
                term=term,
                accepted=getattr(content.terms, term).accepted,
                text=_clause_text(term, content, req_content),
            )
            for term in NEGOTIABLE_TERMS
        ],
        currency=req_content.currency,
        price_table=rows,
        price_total=sum((row.value for row in rows), Decimal("0")),
        price_observation=observation,
        has_photos=bool(content.photos),
        penalty_fee_per_kg=(
            Decimal(str(offer["penalty_fee_per_kg"]))
            if _can_see_private(viewer, offer["seller_id"])
            else None
        ),
        generated_at=now,
    )


def delivery_schedule(
    requirement: dict[str, Any], policy: MarketplacePolicy
) -> dict[str, Any]:
    """Volume per delivery in the requirement's unit and in kilograms"""
    content = RequirementContent.model_validate(requirement["content"])
    per_delivery = volume_per_delivery(
        content.total_volume, content.valid_from, content.valid_until, content.frequency
    )
    return {
        "frequency": content.frequency,
        "per_delivery": per_delivery,
        "unit": content.unit,
        "per_delivery_kg": per_delivery * policy.kilograms_per(content.unit),
    }
