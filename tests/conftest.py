"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

import pytest

from supply_deals.accounts.handlers import AccountCommandHandlers
from supply_deals.accounts.projections import UserRegistry
from supply_deals.desk import SupplyDesk
from supply_deals.kernel.event_store import SQLiteEventStore
from supply_deals.kernel.policy import MarketplacePolicy
from supply_deals.kernel.time import TestTimeProvider
from supply_deals.sourcing.handlers import SourcingCommandHandlers
from supply_deals.sourcing.projections import (
    CommitmentLedger,
    OfferRegistry,
    RequirementRegistry,
)


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL mode leaves sidecar files)
    for suffix in ("", "-wal", "-shm"):
        path = Path(f"{db_path}{suffix}")
        if path.exists():
            path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC, a few weeks before the validity
    windows the builders in helpers.py use.
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> MarketplacePolicy:
    return MarketplacePolicy()


# =============================================================================
# Handler-level fixtures
# =============================================================================


@pytest.fixture
def sourcing_handlers(test_time: TestTimeProvider, policy: MarketplacePolicy) -> SourcingCommandHandlers:
    """
    Provide sourcing command handlers for testing

    Handlers are stateless - they take projections as parameters.
    """
    return SourcingCommandHandlers(test_time, policy)


@pytest.fixture
def account_handlers(test_time: TestTimeProvider) -> AccountCommandHandlers:
    return AccountCommandHandlers(test_time)


@pytest.fixture
def user_registry() -> UserRegistry:
    return UserRegistry()


@pytest.fixture
def requirement_registry() -> RequirementRegistry:
    return RequirementRegistry()


@pytest.fixture
def offer_registry() -> OfferRegistry:
    return OfferRegistry()


@pytest.fixture
def commitment_ledger() -> CommitmentLedger:
    """
    Provide a fresh commitment ledger

    Append-only: commitments are recorded, never amended.
    """
    return CommitmentLedger()


# =============================================================================
# Desk-level fixtures
# =============================================================================


@pytest.fixture
def desk(temp_db: Path, test_time: TestTimeProvider) -> SupplyDesk:
    """Provide a desk over a fresh database with a controllable clock"""
    return SupplyDesk(temp_db, time_provider=test_time)


@pytest.fixture
def admin(desk: SupplyDesk) -> dict[str, Any]:
    return desk.bootstrap_admin("Operaciones", "ops@example.com", city="Bogotá")


@pytest.fixture
def buyer(desk: SupplyDesk, admin: dict[str, Any]) -> dict[str, Any]:
    """A verified buyer"""
    user = desk.register_user(
        "Cartones del Valle", "compras@cartonesvalle.co", "BUYER", city="Cali"
    )
    return desk.verify_user(admin["user_id"], user["user_id"])


@pytest.fixture
def seller(desk: SupplyDesk, admin: dict[str, Any]) -> dict[str, Any]:
    """A verified seller"""
    user = desk.register_user(
        "Recuperadora Andina", "ventas@andina.co", "SELLER", city="Medellín"
    )
    return desk.verify_user(admin["user_id"], user["user_id"])


@pytest.fixture
def second_seller(desk: SupplyDesk, admin: dict[str, Any]) -> dict[str, Any]:
    user = desk.register_user("Reciclajes Sabana", "info@sabana.co", "SELLER", city="Chía")
    return desk.verify_user(admin["user_id"], user["user_id"])
