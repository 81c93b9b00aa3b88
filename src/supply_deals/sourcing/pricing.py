"""
Price Formula Ledger

A buyer prices a requirement as an ordered list of named components
("Base", "Flete", ...) whose sum is the price per unit. A seller who declines
that formula answers with a counter-proposal: the same table, with values
changed, components dropped or new ones added. Each counter entry remembers
the buyer's original value and whether the component is new, so the buyer
(and later the seller, re-editing) sees exactly what changed.

Counter-proposals cross the storage boundary as versioned JSON. Old payloads
written before the schema was versioned (camelCase keys, missing flags) still
load; free text does not.
"""

import json
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError, field_validator

from supply_deals.kernel.errors import InvalidPriceStructure

PRICE_SCHEMA_VERSION = 1


class PriceComponent(BaseModel):
    """One named line of a buyer's price formula"""

    name: str = Field(..., description="Component name, unique within a formula")
    value: Decimal = Field(..., description="Monetary value per unit")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("price component needs a name")
        return v


class CounterPriceEntry(BaseModel):
    """One line of a seller's counter-proposal"""

    name: str
    value: Decimal
    original_value: Decimal | None = Field(
        default=None,
        validation_alias=AliasChoices("original_value", "originalValue"),
        description="Buyer's value for this component (0 for new components)",
    )
    is_new: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("is_new", "isNew"),
        description="True if the buyer's formula has no component with this name",
    )

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("counter-proposal entry needs a name")
        return v


class PriceCounterProposal(BaseModel):
    """
    Seller's counter to the buyer's price formula

    Serialized with to_json() and read back with from_json(); the
    schema_version lets the format evolve without breaking stored offers.
    """

    schema_version: int = Field(
        default=PRICE_SCHEMA_VERSION,
        validation_alias=AliasChoices("schema_version", "schemaVersion"),
    )
    variables: list[CounterPriceEntry] = Field(..., min_length=1)
    observation: str = Field(default="", description="Seller's free-text remark")

    @property
    def total(self) -> Decimal:
        return sum((entry.value for entry in self.variables), Decimal("0"))

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: "str | dict[str, Any] | PriceCounterProposal") -> "PriceCounterProposal":
        """
        Parse a stored counter-proposal

        Raises:
            InvalidPriceStructure: Free text, a non-object payload, missing
                variables, or a schema version newer than this code
        """
        if isinstance(raw, PriceCounterProposal):
            return raw
        data: Any = raw
        if isinstance(raw, str):
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                raise InvalidPriceStructure(
                    "Price counter-proposal is not structured JSON"
                ) from e
        if not isinstance(data, dict):
            raise InvalidPriceStructure("Price counter-proposal must be a JSON object")

        version = data.get("schema_version", data.get("schemaVersion", PRICE_SCHEMA_VERSION))
        if not isinstance(version, int) or version > PRICE_SCHEMA_VERSION:
            raise InvalidPriceStructure(f"Unsupported price schema version: {version!r}")

        try:
            proposal = cls.model_validate(data)
        except ValidationError as e:
            raise InvalidPriceStructure(f"Malformed price counter-proposal: {e}") from e
        return proposal.model_copy(update={"schema_version": PRICE_SCHEMA_VERSION})


class PriceTableRow(BaseModel):
    """Editable row shown when a counter-proposal is reopened"""

    name: str
    value: Decimal
    original_value: Decimal
    is_new: bool

    @property
    def difference(self) -> Decimal:
        return self.value - self.original_value


_formula_adapter = TypeAdapter(list[PriceComponent])


def parse_price_formula(raw: str | list[Any]) -> list[PriceComponent]:
    """
    Validate a buyer's price formula arriving from outside

    Args:
        raw: JSON text or an already-decoded list of {name, value}

    Raises:
        InvalidPriceStructure: Not a list, unnamed or non-numeric components,
            duplicate names
    """
    data: Any = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidPriceStructure("Price formula is not valid JSON") from e
    if not isinstance(data, list):
        raise InvalidPriceStructure("Price formula must be a list of components")

    try:
        components = _formula_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidPriceStructure(f"Malformed price formula: {e}") from e

    reject_duplicate_names([c.name for c in components])
    return components


def reject_duplicate_names(names: list[str]) -> None:
    """
    Raises:
        InvalidPriceStructure: Two components share a name
    """
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise InvalidPriceStructure(f"Duplicate price components: {', '.join(duplicates)}")


def formula_total(components: list[PriceComponent]) -> Decimal:
    """Price per unit: the sum of all components"""
    return sum((c.value for c in components), Decimal("0"))


def build_counter_proposal(
    buyer_formula: list[PriceComponent],
    seller_components: list[PriceComponent],
    observation: str = "",
) -> PriceCounterProposal:
    """
    Build a counter-proposal from the seller's edited table

    Components the buyer already had keep the buyer's value as
    original_value; components the buyer never listed are flagged is_new
    with an original value of zero.
    """
    buyer_values = {c.name: c.value for c in buyer_formula}
    entries = []
    for component in seller_components:
        known = component.name in buyer_values
        entries.append(
            CounterPriceEntry(
                name=component.name,
                value=component.value,
                original_value=buyer_values[component.name] if known else Decimal("0"),
                is_new=not known,
            )
        )
    return PriceCounterProposal(variables=entries, observation=observation)


def rebase_counter_proposal(
    proposal: PriceCounterProposal, buyer_formula: list[PriceComponent]
) -> PriceCounterProposal:
    """
    Re-derive original_value and is_new for a submitted counter-proposal

    Whatever flags the seller sent are discarded; only names and values are
    kept and matched against the buyer's current formula.

    Raises:
        InvalidPriceStructure: Two counter entries share a name
    """
    reject_duplicate_names([entry.name for entry in proposal.variables])
    return build_counter_proposal(
        buyer_formula,
        [PriceComponent(name=entry.name, value=entry.value) for entry in proposal.variables],
        proposal.observation,
    )


def reconstruct_price_table(
    stored: "str | dict[str, Any] | PriceCounterProposal",
    buyer_formula: list[PriceComponent],
) -> list[PriceTableRow]:
    """
    Rebuild the editable table for a stored counter-proposal

    Stored flags win. Legacy entries missing them are matched back to the
    buyer's formula by name; an entry with no buyer match and no stored
    original counts as new.
    """
    proposal = PriceCounterProposal.from_json(stored)
    buyer_values = {c.name: c.value for c in buyer_formula}

    rows = []
    for entry in proposal.variables:
        found = entry.name in buyer_values
        if entry.original_value is not None:
            original = entry.original_value
        else:
            original = buyer_values.get(entry.name, Decimal("0"))

        if entry.is_new is not None:
            is_new = entry.is_new
        else:
            is_new = original == 0 and not found

        rows.append(
            PriceTableRow(
                name=entry.name, value=entry.value, original_value=original, is_new=is_new
            )
        )
    return rows
