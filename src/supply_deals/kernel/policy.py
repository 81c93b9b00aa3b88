"""
Marketplace Policy - tunable parameters of the brokerage

Everything an operator may reasonably want to change without a code change:
id prefixes, unit conversions used by the fee schedule, reminder thresholds
and how hard the desk retries after a concurrent write.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class MarketplacePolicy(BaseModel):
    """
    Operating parameters for the supply desk

    Defaults match the single-module deployment ("M1") trading in tons and
    kilograms.
    """

    policy_version: str = Field(default="1.0", description="Policy version")

    id_module: str = Field(
        default="M1",
        min_length=1,
        description="Module prefix stamped on requirement/offer/commitment ids",
    )

    unit_to_kg: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "Toneladas (Ton)": Decimal("1000"),
            "Ton": Decimal("1000"),
            "Kilogramos (Kg)": Decimal("1"),
            "Kg": Decimal("1"),
        },
        description="Kilograms per unit, used by the fee schedule",
    )

    default_kg_per_unit: Decimal = Field(
        default=Decimal("1000"),
        gt=0,
        description="Kilograms per unit for units missing from unit_to_kg (tons)",
    )

    edit_approval_reminder_days: int = Field(
        default=7,
        ge=1,
        description="Days an owner may sit on an admin-proposed edit before a reminder",
    )

    allow_expired_window_override: bool = Field(
        default=True,
        description="Admins may file offers past an already-expired requirement window",
    )

    max_conflict_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per command when another writer touched the aggregate",
    )

    def kilograms_per(self, unit: str) -> Decimal:
        """Kilograms in one unit of the given name"""
        return self.unit_to_kg.get(unit, self.default_kg_per_unit)
