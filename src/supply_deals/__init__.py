"""
Supply Deals - Event-sourced brokerage for recurring recyclable-material supply

Buyers publish volume requirements, sellers answer them with clause-by-clause
offers, admins moderate both, and every offer a buyer approves lands on an
append-only commitment ledger until the requirement's volume is covered.
"""

from supply_deals.desk import SupplyDesk

__version__ = "0.1.0"
__all__ = ["SupplyDesk", "__version__"]
