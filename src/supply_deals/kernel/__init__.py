"""
Kernel - event-sourced infrastructure shared by every module

Event envelope, SQLite event store, ids, injectable time, structured logging,
metrics, retries and the marketplace policy.
"""

from supply_deals.kernel.event_store import SQLiteEventStore
from supply_deals.kernel.events import Event, create_event
from supply_deals.kernel.ids import generate_entity_id, generate_id, validate_id
from supply_deals.kernel.policy import MarketplacePolicy
from supply_deals.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    "Event",
    "create_event",
    "SQLiteEventStore",
    "generate_id",
    "generate_entity_id",
    "validate_id",
    "MarketplacePolicy",
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
]
