"""
Test Helper Functions - Builders

Content builders for requirements and offers, plus shortcuts that walk a
requirement or offer to a given status through the desk.

Fun fact: Test data builders were popularized by the growing programmer test
movement in the 2000s - they keep every test about the one field it changes!
"""

from datetime import date
from decimal import Decimal
from typing import Any

from supply_deals.desk import SupplyDesk


def requirement_content(**overrides: Any) -> dict[str, Any]:
    """
    Builder for requirement content

    Defaults: 100 Ton of baled cardboard, monthly, Feb 2025 - Jan 2026,
    priced Base 800 + Flete 50.
    """
    content: dict[str, Any] = {
        "category": "Papel y Cartón",
        "subcategory": "Cartón Corrugado",
        "presentation": "Pacas",
        "total_volume": "100",
        "unit": "Ton",
        "frequency": "Mensual",
        "quality": {"description": "Humedad máxima 12%"},
        "logistics": {"description": "Cargue por cuenta del proveedor"},
        "freight_terms": "Incluido",
        "delivery_department": "Valle del Cauca",
        "delivery_city": "Cali",
        "currency": "COP",
        "price_formula": [
            {"name": "Base", "value": "800"},
            {"name": "Flete", "value": "50"},
        ],
        "payment_type": "Crédito 30 días",
        "payment_method": "Transferencia",
        "advance_percentage": "0",
        "valid_from": date(2025, 2, 1).isoformat(),
        "valid_until": date(2026, 1, 31).isoformat(),
        "management_fee_accepted": True,
    }
    content.update(overrides)
    return content


def offer_content(volume: str | Decimal = "60", **overrides: Any) -> dict[str, Any]:
    """Builder for offer content accepting every clause"""
    content: dict[str, Any] = {
        "volume": str(volume),
        "supply_frequency": "Mensual",
        "vehicle_type": "Tractomula",
        "valid_from": date(2025, 2, 1).isoformat(),
        "valid_until": date(2025, 12, 31).isoformat(),
        "penalty_fee_accepted": True,
    }
    content.update(overrides)
    return content


def price_counter_terms(*components: tuple[str, str], observation: str = "") -> dict[str, Any]:
    """Offer terms declining the price with a counter-proposal table"""
    return {
        "price_formula": {
            "accepted": False,
            "counter_proposal": {
                "variables": [{"name": name, "value": value} for name, value in components],
                "observation": observation,
            },
        }
    }


def active_requirement(
    desk: SupplyDesk, admin_id: str, buyer_id: str, **overrides: Any
) -> dict[str, Any]:
    """Create and approve a requirement"""
    requirement = desk.create_requirement(buyer_id, requirement_content(**overrides))
    return desk.approve_requirement(admin_id, requirement["requirement_id"])


def offer_pending_buyer(
    desk: SupplyDesk,
    admin_id: str,
    seller_id: str,
    requirement_id: str,
    volume: str = "60",
    **overrides: Any,
) -> dict[str, Any]:
    """Create an offer and pass it through moderation"""
    offer = desk.create_offer(seller_id, requirement_id, offer_content(volume, **overrides))
    return desk.approve_offer(admin_id, offer["offer_id"])
