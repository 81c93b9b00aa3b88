"""
Sourcing - recurring-supply requirements, offers and the commitment ledger

A buyer publishes a Requirement; sellers answer it with Offers that accept or
counter each clause; admins moderate both; every offer the buyer approves
writes a Commitment, and the requirement completes once its volume is
covered.
"""

from supply_deals.sourcing.models import (
    OfferContent,
    OfferStatus,
    RequirementContent,
    RequirementStatus,
)
from supply_deals.sourcing.pricing import PriceComponent, PriceCounterProposal
from supply_deals.sourcing.terms import OfferTerms, PriceTermNegotiation, TermNegotiation

__all__ = [
    "RequirementContent",
    "RequirementStatus",
    "OfferContent",
    "OfferStatus",
    "OfferTerms",
    "TermNegotiation",
    "PriceTermNegotiation",
    "PriceComponent",
    "PriceCounterProposal",
]
