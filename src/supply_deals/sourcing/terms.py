"""
Term Negotiation Model

An offer answers every clause of the requirement with accept, or decline plus
a counter-proposal. Price is special: its counter-proposal is a structured
table (see pricing.py) instead of free text.
"""

from pydantic import BaseModel, Field

from supply_deals.sourcing.pricing import PriceCounterProposal

NEGOTIABLE_TERMS = (
    "quality",
    "logistics",
    "delivery_place",
    "price_formula",
    "payment_type",
    "payment_method",
)


class TermNegotiation(BaseModel):
    """Seller's answer to one clause"""

    accepted: bool = True
    counter_proposal: str | None = Field(
        default=None, description="Seller's alternative when the clause is declined"
    )

    @property
    def has_counter_proposal(self) -> bool:
        return bool(self.counter_proposal and self.counter_proposal.strip())


class PriceTermNegotiation(BaseModel):
    """Seller's answer to the price formula"""

    accepted: bool = True
    counter_proposal: PriceCounterProposal | None = None

    @property
    def has_counter_proposal(self) -> bool:
        return self.counter_proposal is not None


class OfferTerms(BaseModel):
    """One negotiation per clause; all accepted unless stated otherwise"""

    quality: TermNegotiation = Field(default_factory=TermNegotiation)
    logistics: TermNegotiation = Field(default_factory=TermNegotiation)
    delivery_place: TermNegotiation = Field(default_factory=TermNegotiation)
    price_formula: PriceTermNegotiation = Field(default_factory=PriceTermNegotiation)
    payment_type: TermNegotiation = Field(default_factory=TermNegotiation)
    payment_method: TermNegotiation = Field(default_factory=TermNegotiation)

    def declined(self) -> list[str]:
        """Names of the clauses the seller declined"""
        return [name for name in NEGOTIABLE_TERMS if not getattr(self, name).accepted]

    def missing_counter_proposals(self) -> list[str]:
        return [
            name for name in self.declined() if not getattr(self, name).has_counter_proposal
        ]

    @property
    def accepts_everything(self) -> bool:
        return not self.declined()
