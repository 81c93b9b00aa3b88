"""
Supply Deals CLI

Command-line interface for the supply desk.
Provides commands for accounts, requirements, offers, the ledger and monitoring.

Usage:
    supply init --db supply.db
    supply user bootstrap-admin --name Ops --email ops@example.com
    supply user register --name Acme --email buy@acme.co --role BUYER
    supply requirement create --buyer <user_id> --file requirement.json
    supply requirement approve --admin <user_id> --id <requirement_id>
    supply offer create --seller <user_id> --requirement <id> --file offer.json
    supply offer accept --buyer <user_id> --id <offer_id>
    supply ledger --requirement <id>
    supply tick
"""

import json
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from supply_deals.desk import SupplyDesk
from supply_deals.kernel.logging import configure_logging

# Configure logging to stderr (avoids polluting stdout for JSON output)
configure_logging(json_output=False, log_level="INFO")

app = typer.Typer(
    name="supply",
    help="Supply Deals - Recurring recyclable-material brokerage",
    add_completion=False,
)

# Sub-apps
user_app = typer.Typer(help="User account commands")
requirement_app = typer.Typer(help="Requirement lifecycle commands")
offer_app = typer.Typer(help="Offer lifecycle commands")
quantity_app = typer.Typer(help="Quantity-increase decisions")

app.add_typer(user_app, name="user")
app.add_typer(requirement_app, name="requirement")
app.add_typer(offer_app, name="offer")
app.add_typer(quantity_app, name="quantity")

# Global state
DEFAULT_DB = Path(".supply.db")

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


def get_desk(db_path: Optional[Path] = None) -> SupplyDesk:
    """Get SupplyDesk instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'supply init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return SupplyDesk(str(db))


def load_json_file(path: Path) -> dict:
    if not path.exists():
        typer.echo(f"Error: File not found: {path}", err=True)
        raise typer.Exit(1)
    return json.loads(path.read_text(encoding="utf-8"))


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new supply database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    SupplyDesk(str(db))
    typer.echo(f"✓ Initialized supply database: {db}")


# User commands


@user_app.command("bootstrap-admin")
def user_bootstrap_admin(
    name: Annotated[str, typer.Option("--name", help="Admin name")],
    email: Annotated[str, typer.Option("--email", help="Admin email")],
    db: DbOption = None,
) -> None:
    """Create the first administrator (already verified)"""
    desk = get_desk(db)
    admin = desk.bootstrap_admin(name=name, email=email)

    typer.echo(f"✓ Created admin: {admin['user_id']}")
    typer.echo(f"  Status: {admin['status']}")


@user_app.command("register")
def user_register(
    name: Annotated[str, typer.Option("--name", help="User or company name")],
    email: Annotated[str, typer.Option("--email", help="Contact email")],
    role: Annotated[str, typer.Option("--role", help="BUYER or SELLER")],
    city: Annotated[Optional[str], typer.Option("--city", help="City")] = None,
    db: DbOption = None,
) -> None:
    """Register a user; an admin must verify it"""
    desk = get_desk(db)
    user = desk.register_user(name=name, email=email, role=role.upper(), city=city)

    typer.echo(f"✓ Registered user: {user['user_id']}")
    typer.echo(f"  Role: {user['role']}")
    typer.echo(f"  Status: {user['status']}")


@user_app.command("verify")
def user_verify(
    admin: Annotated[str, typer.Option("--admin", help="Admin user ID")],
    user_id: Annotated[str, typer.Option("--id", help="User ID")],
    db: DbOption = None,
) -> None:
    """Verify a pending user"""
    desk = get_desk(db)
    user = desk.verify_user(admin, user_id)
    typer.echo(f"✓ Verified user: {user['user_id']} ({user['status']})")


@user_app.command("status")
def user_status(
    admin: Annotated[str, typer.Option("--admin", help="Admin user ID")],
    user_id: Annotated[str, typer.Option("--id", help="User ID")],
    status: Annotated[
        str, typer.Option("--status", help="ACTIVE, INACTIVE, BLOCKED or DELETED")
    ],
    note: Annotated[Optional[str], typer.Option("--note", help="Admin note")] = None,
    db: DbOption = None,
) -> None:
    """Change a user's account status"""
    desk = get_desk(db)
    user = desk.set_user_status(admin, user_id, status.upper(), note)
    typer.echo(f"✓ User {user['user_id']} is now {user['status']}")


@user_app.command("list")
def user_list(
    role: Annotated[Optional[str], typer.Option("--role", help="Filter by role")] = None,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """List users"""
    desk = get_desk(db)
    users = desk.list_users(role=role.upper() if role else None)

    if json_output:
        typer.echo(json.dumps(users, indent=2, default=str))
        return

    if not users:
        typer.echo("No users")
        return

    typer.echo(f"Users ({len(users)}):")
    for user in users:
        typer.echo(f"  {user['user_id']}: {user['name']} [{user['role']}, {user['status']}]")


# Requirement commands


@requirement_app.command("create")
def requirement_create(
    buyer: Annotated[str, typer.Option("--buyer", help="Buyer user ID")],
    file: Annotated[Path, typer.Option("--file", help="Requirement content (JSON file)")],
    db: DbOption = None,
) -> None:
    """Publish a requirement for moderation"""
    desk = get_desk(db)
    requirement = desk.create_requirement(buyer, load_json_file(file))

    typer.echo(f"✓ Created requirement: {requirement['requirement_id']}")
    typer.echo(f"  Title: {requirement['title']}")
    typer.echo(f"  Status: {requirement['status']}")


@requirement_app.command("approve")
def requirement_approve(
    admin: Annotated[str, typer.Option("--admin", help="Admin user ID")],
    requirement_id: Annotated[str, typer.Option("--id", help="Requirement ID")],
    db: DbOption = None,
) -> None:
    """Approve a pending requirement"""
    desk = get_desk(db)
    requirement = desk.approve_requirement(admin, requirement_id)
    typer.echo(f"✓ Approved requirement: {requirement_id}")
    typer.echo(f"  Status: {requirement['status']}")


@requirement_app.command("reject")
def requirement_reject(
    admin: Annotated[str, typer.Option("--admin", help="Admin user ID")],
    requirement_id: Annotated[str, typer.Option("--id", help="Requirement ID")],
    reason: Annotated[str, typer.Option("--reason", help="Reason shown to the buyer")],
    db: DbOption = None,
) -> None:
    """Reject a pending requirement"""
    desk = get_desk(db)
    requirement = desk.reject_requirement(admin, requirement_id, reason)
    typer.echo(f"✓ Rejected requirement: {requirement_id}")
    typer.echo(f"  Status: {requirement['status']}")


@requirement_app.command("list")
def requirement_list(
    status: Annotated[Optional[str], typer.Option("--status", help="Filter by status")] = None,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """List requirements"""
    desk = get_desk(db)
    requirements = desk.list_requirements(status=status.upper() if status else None)

    if json_output:
        typer.echo(json.dumps(requirements, indent=2, default=str))
        return

    if not requirements:
        typer.echo("No requirements")
        return

    typer.echo(f"Requirements ({len(requirements)}):")
    for req in requirements:
        content = req["content"]
        typer.echo(
            f"  {req['requirement_id']}: {req['title']} "
            f"({content['total_volume']} {content['unit']}) [{req['status']}]"
        )


@requirement_app.command("show")
def requirement_show(
    viewer: Annotated[str, typer.Option("--viewer", help="Viewing user ID")],
    requirement_id: Annotated[str, typer.Option("--id", help="Requirement ID")],
    db: DbOption = None,
) -> None:
    """Show the requirement document as the viewer sees it"""
    desk = get_desk(db)
    document = desk.requirement_document(viewer, requirement_id)
    typer.echo(json.dumps(document.model_dump(mode="json"), indent=2, default=str))


# Offer commands


@offer_app.command("create")
def offer_create(
    seller: Annotated[str, typer.Option("--seller", help="Seller user ID")],
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    file: Annotated[Path, typer.Option("--file", help="Offer content (JSON file)")],
    db: DbOption = None,
) -> None:
    """Answer an active requirement"""
    desk = get_desk(db)
    offer = desk.create_offer(seller, requirement_id, load_json_file(file))

    typer.echo(f"✓ Created offer: {offer['offer_id']}")
    typer.echo(f"  Volume: {offer['content']['volume']} {offer['unit']}")
    typer.echo(f"  Status: {offer['status']}")


@offer_app.command("approve")
def offer_approve(
    admin: Annotated[str, typer.Option("--admin", help="Admin user ID")],
    offer_id: Annotated[str, typer.Option("--id", help="Offer ID")],
    db: DbOption = None,
) -> None:
    """Moderation approval: send the offer to the buyer"""
    desk = get_desk(db)
    offer = desk.approve_offer(admin, offer_id)
    typer.echo(f"✓ Approved offer: {offer_id} ({offer['status']})")


@offer_app.command("reject")
def offer_reject(
    admin: Annotated[str, typer.Option("--admin", help="Admin user ID")],
    offer_id: Annotated[str, typer.Option("--id", help="Offer ID")],
    reason: Annotated[str, typer.Option("--reason", help="Reason shown to the seller")],
    db: DbOption = None,
) -> None:
    """Reject an offer in moderation"""
    desk = get_desk(db)
    offer = desk.reject_offer(admin, offer_id, reason)
    typer.echo(f"✓ Rejected offer: {offer_id} ({offer['status']})")


@offer_app.command("accept")
def offer_accept(
    buyer: Annotated[str, typer.Option("--buyer", help="Buyer user ID")],
    offer_id: Annotated[str, typer.Option("--id", help="Offer ID")],
    db: DbOption = None,
) -> None:
    """Buyer approves an offer"""
    desk = get_desk(db)
    offer = desk.buyer_approve_offer(buyer, offer_id)

    if offer["status"] == "APPROVED":
        ledger = desk.ledger(offer["requirement_id"])
        typer.echo(f"✓ Accepted offer: {offer_id}")
        typer.echo(f"  Committed: {ledger['committed']} / {ledger['total_volume']}")
    else:
        typer.echo(f"⚠️  Offer {offer_id} exceeds the remaining volume")
        typer.echo("  Quantity increase requested; an admin must decide")


@offer_app.command("decline")
def offer_decline(
    buyer: Annotated[str, typer.Option("--buyer", help="Buyer user ID")],
    offer_id: Annotated[str, typer.Option("--id", help="Offer ID")],
    reason: Annotated[str, typer.Option("--reason", help="Reason shown to the seller")],
    db: DbOption = None,
) -> None:
    """Buyer rejects an offer"""
    desk = get_desk(db)
    offer = desk.buyer_reject_offer(buyer, offer_id, reason)
    typer.echo(f"✓ Declined offer: {offer_id} ({offer['status']})")


@offer_app.command("list")
def offer_list(
    requirement_id: Annotated[
        Optional[str], typer.Option("--requirement", help="Filter by requirement")
    ] = None,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """List offers"""
    desk = get_desk(db)
    offers = desk.list_offers(requirement_id=requirement_id)

    if json_output:
        typer.echo(json.dumps(offers, indent=2, default=str))
        return

    if not offers:
        typer.echo("No offers")
        return

    typer.echo(f"Offers ({len(offers)}):")
    for offer in offers:
        typer.echo(
            f"  {offer['offer_id']}: {offer['content']['volume']} {offer['unit']} [{offer['status']}]"
        )


@offer_app.command("log")
def offer_log(
    offer_id: Annotated[str, typer.Option("--id", help="Offer ID")],
    db: DbOption = None,
) -> None:
    """Show the offer's communication log"""
    desk = get_desk(db)
    entries = desk.communication_log(offer_id)

    if not entries:
        typer.echo("No messages")
        return

    for entry in entries:
        typer.echo(f"  {entry['timestamp']} [{entry['author']}] {entry['message']}")


# Quantity-increase commands


@quantity_app.command("decide")
def quantity_decide(
    admin: Annotated[str, typer.Option("--admin", help="Admin user ID")],
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    approve: Annotated[bool, typer.Option("--approve/--reject", help="Decision")],
    reason: Annotated[
        Optional[str], typer.Option("--reason", help="Required when rejecting")
    ] = None,
    db: DbOption = None,
) -> None:
    """Approve or reject a pending quantity increase"""
    desk = get_desk(db)
    requirement = desk.decide_quantity_increase(admin, requirement_id, approve, reason)

    typer.echo(f"✓ Quantity increase {'approved' if approve else 'rejected'}")
    typer.echo(f"  Total volume: {requirement['content']['total_volume']}")
    typer.echo(f"  Status: {requirement['status']}")


# Ledger and monitoring commands


@app.command()
def ledger(
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Show committed and remaining volume of a requirement"""
    desk = get_desk(db)
    summary = desk.ledger(requirement_id)

    if json_output:
        typer.echo(json.dumps(summary, indent=2, default=str))
        return

    typer.echo(f"Ledger for {requirement_id}:")
    typer.echo(f"  Total: {summary['total_volume']}")
    typer.echo(f"  Committed: {summary['committed']}")
    typer.echo(f"  Remaining: {summary['remaining']}")
    for commitment in summary["commitments"]:
        typer.echo(
            f"    - {commitment['commitment_id']}: {commitment['volume']} {commitment['unit']} "
            f"(offer {commitment['offer_id']})"
        )


@app.command()
def tick(db: DbOption = None) -> None:
    """Run periodic reminders"""
    desk = get_desk(db)

    result = desk.tick()

    typer.echo(f"✓ Tick completed: {result.tick_id}")
    typer.echo(f"  Events triggered: {len(result.triggered_events)}")

    if result.has_reminders():
        typer.echo("\n  Reminders sent for:")
        for entity_id in result.reminded_entities():
            typer.echo(f"    - {entity_id}")


@app.command()
def health(json_output: JsonOption = False, db: DbOption = None) -> None:
    """Show store and projection counts"""
    desk = get_desk(db)
    stats = desk.health_stats()

    if json_output:
        typer.echo(json.dumps(stats, indent=2, default=str))
        return

    typer.echo(f"Events: {stats['events']} in {stats['streams']} streams")
    typer.echo(f"Users: {stats['users']}")
    typer.echo(f"Commitments: {stats['commitments']}")
    typer.echo("Requirements:")
    for status, count in stats["requirements"].items():
        if count:
            typer.echo(f"  {status}: {count}")
    typer.echo("Offers:")
    for status, count in stats["offers"].items():
        if count:
            typer.echo(f"  {status}: {count}")


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
