"""
CLI integration tests

Drives a whole brokerage round through Typer's CliRunner: accounts,
moderation, an offer, the ledger and the monitoring commands.

Fun fact: Typer is built on Click, whose CliRunner swaps out stdin and
stdout in-process - no subprocess is ever spawned during these tests!
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from supply_deals.cli.main import app
from supply_deals.kernel.errors import RoleMismatch
from tests.helpers import offer_content, requirement_content


@pytest.fixture
def runner() -> CliRunner:
    """Typer CLI test runner"""
    return CliRunner()


@pytest.fixture
def db(runner: CliRunner, tmp_path: Path) -> Path:
    """An initialized database"""
    db_path = tmp_path / "supply.db"
    result = runner.invoke(app, ["init", "--db", str(db_path)])
    assert result.exit_code == 0
    return db_path


def value_after(result, prefix: str) -> str:
    """Pull the value printed after 'prefix: ' in the command output"""
    for line in result.stdout.splitlines():
        line = line.strip()
        if line.startswith(prefix):
            return line.split(": ", 1)[1].split()[0]
    raise AssertionError(f"{prefix!r} not in output:\n{result.stdout}")


def invoke(runner: CliRunner, db: Path, *args: str):
    result = runner.invoke(app, [*args, "--db", str(db)])
    assert result.exit_code == 0, result.stdout
    return result


@pytest.fixture
def market(runner: CliRunner, db: Path, tmp_path: Path) -> dict[str, str]:
    """Admin, verified buyer and seller, and one approved requirement"""
    admin = value_after(
        invoke(runner, db, "user", "bootstrap-admin", "--name", "Ops", "--email", "ops@example.com"),
        "✓ Created admin",
    )

    ids = {"admin": admin}
    for role, name, city in (("buyer", "Cartones del Valle", "Cali"), ("seller", "Andina", "Medellín")):
        user_id = value_after(
            invoke(
                runner, db, "user", "register",
                "--name", name, "--email", f"{role}@example.com",
                "--role", role, "--city", city,
            ),
            "✓ Registered user",
        )
        invoke(runner, db, "user", "verify", "--admin", admin, "--id", user_id)
        ids[role] = user_id

    requirement_file = tmp_path / "requirement.json"
    requirement_file.write_text(json.dumps(requirement_content()), encoding="utf-8")
    ids["requirement"] = value_after(
        invoke(
            runner, db, "requirement", "create",
            "--buyer", ids["buyer"], "--file", str(requirement_file),
        ),
        "✓ Created requirement",
    )
    invoke(runner, db, "requirement", "approve", "--admin", admin, "--id", ids["requirement"])
    return ids


# =============================================================================
# Initialization
# =============================================================================


def test_init_creates_database(runner: CliRunner, tmp_path: Path) -> None:
    db_path = tmp_path / "new.db"

    result = runner.invoke(app, ["init", "--db", str(db_path)])

    assert result.exit_code == 0
    assert db_path.exists()
    assert "initialized" in result.stdout.lower()


def test_init_refuses_existing_database(runner: CliRunner, db: Path) -> None:
    result = runner.invoke(app, ["init", "--db", str(db)])
    assert result.exit_code == 1


def test_missing_database(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(app, ["health", "--db", str(tmp_path / "nope.db")])
    assert result.exit_code == 1


# =============================================================================
# Accounts and requirements
# =============================================================================


def test_user_list(runner: CliRunner, db: Path, market: dict[str, str]) -> None:
    result = invoke(runner, db, "user", "list", "--role", "seller")

    assert "Users (1):" in result.stdout
    assert market["seller"] in result.stdout
    assert "SELLER, ACTIVE" in result.stdout


def test_requirement_list_shows_title_and_status(
    runner: CliRunner, db: Path, market: dict[str, str]
) -> None:
    result = invoke(runner, db, "requirement", "list", "--status", "active")

    assert "Cartón Corrugado - 100 Ton" in result.stdout
    assert "[ACTIVE]" in result.stdout


def test_requirement_show_hides_buyer_from_seller(
    runner: CliRunner, db: Path, market: dict[str, str]
) -> None:
    result = invoke(
        runner, db, "requirement", "show", "--viewer", market["seller"], "--id", market["requirement"]
    )

    assert "Comprador (Cali)" in result.stdout
    assert "Cartones del Valle" not in result.stdout


def test_domain_errors_propagate(
    runner: CliRunner, db: Path, market: dict[str, str], tmp_path: Path
) -> None:
    requirement_file = tmp_path / "seller-requirement.json"
    requirement_file.write_text(json.dumps(requirement_content()), encoding="utf-8")

    result = runner.invoke(
        app,
        [
            "requirement", "create",
            "--buyer", market["seller"], "--file", str(requirement_file), "--db", str(db),
        ],
    )

    assert result.exit_code != 0
    assert isinstance(result.exception, RoleMismatch)


# =============================================================================
# Offers and the ledger
# =============================================================================


def test_offer_round_trip_updates_ledger(
    runner: CliRunner, db: Path, market: dict[str, str], tmp_path: Path
) -> None:
    offer_file = tmp_path / "offer.json"
    offer_file.write_text(json.dumps(offer_content("60")), encoding="utf-8")

    created = invoke(
        runner, db, "offer", "create",
        "--seller", market["seller"], "--requirement", market["requirement"],
        "--file", str(offer_file),
    )
    offer_id = value_after(created, "✓ Created offer")
    assert "Volume: 60 Ton" in created.stdout

    invoke(runner, db, "offer", "approve", "--admin", market["admin"], "--id", offer_id)
    accepted = invoke(runner, db, "offer", "accept", "--buyer", market["buyer"], "--id", offer_id)
    assert "Committed: 60 / 100" in accepted.stdout

    ledger = invoke(runner, db, "ledger", "--requirement", market["requirement"])
    assert "Remaining: 40" in ledger.stdout
    assert offer_id in ledger.stdout

    log = invoke(runner, db, "offer", "log", "--id", offer_id)
    assert "No messages" in log.stdout


def test_overflow_goes_to_quantity_decision(
    runner: CliRunner, db: Path, market: dict[str, str], tmp_path: Path
) -> None:
    offer_file = tmp_path / "big-offer.json"
    offer_file.write_text(json.dumps(offer_content("120")), encoding="utf-8")
    offer_id = value_after(
        invoke(
            runner, db, "offer", "create",
            "--seller", market["seller"], "--requirement", market["requirement"],
            "--file", str(offer_file),
        ),
        "✓ Created offer",
    )
    invoke(runner, db, "offer", "approve", "--admin", market["admin"], "--id", offer_id)

    accepted = invoke(runner, db, "offer", "accept", "--buyer", market["buyer"], "--id", offer_id)
    assert "Quantity increase requested" in accepted.stdout

    decided = invoke(
        runner, db, "quantity", "decide",
        "--admin", market["admin"], "--requirement", market["requirement"],
        "--reject", "--reason", "Capacidad de planta",
    )
    assert "Status: ACTIVE" in decided.stdout

    log = invoke(runner, db, "offer", "log", "--id", offer_id)
    assert "Aumento rechazado: Capacidad de planta" in log.stdout


# =============================================================================
# Monitoring
# =============================================================================


def test_tick_on_a_quiet_market(runner: CliRunner, db: Path, market: dict[str, str]) -> None:
    result = invoke(runner, db, "tick")

    assert "Tick completed" in result.stdout
    assert "Events triggered: 0" in result.stdout


def test_health_counts(runner: CliRunner, db: Path, market: dict[str, str]) -> None:
    result = invoke(runner, db, "health")

    assert "Users: 3" in result.stdout
    assert "ACTIVE: 1" in result.stdout
