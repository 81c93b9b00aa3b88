"""
SupplyDesk - Main façade class

This is the primary interface for interacting with the supply brokerage.
It provides a clean, high-level API that hides the complexity of event
sourcing, projections, and command handling.

Example:
    >>> from supply_deals import SupplyDesk
    >>> desk = SupplyDesk("supply.db")
    >>> admin = desk.bootstrap_admin("Ops", "ops@example.com")
    >>> req = desk.create_requirement(buyer_id, content)
    >>> desk.approve_requirement(admin["user_id"], req["requirement_id"])
    >>> offer = desk.create_offer(seller_id, req["requirement_id"], offer_content)
    >>> desk.approve_offer(admin["user_id"], offer["offer_id"])
    >>> desk.buyer_approve_offer(buyer_id, offer["offer_id"])
    >>> desk.ledger(req["requirement_id"])
"""

import time
from collections.abc import Callable
from decimal import Decimal
from pathlib import Path
from typing import Any

from supply_deals.accounts import commands as account_commands
from supply_deals.accounts.handlers import AccountCommandHandlers
from supply_deals.accounts.models import Role, UserStatus
from supply_deals.accounts.projections import UserRegistry, require_user_with_role
from supply_deals.kernel.errors import (
    IllegalTransition,
    OfferNotFound,
    RequirementNotFound,
    StreamVersionConflict,
    UserNotFound,
)
from supply_deals.kernel.event_store import SQLiteEventStore
from supply_deals.kernel.events import Event
from supply_deals.kernel.ids import generate_id
from supply_deals.kernel.locks import AggregateLocks
from supply_deals.kernel.logging import LogOperation, get_logger
from supply_deals.kernel.metrics import (
    projection_rebuild_duration_seconds,
    quantity_increase_decisions_total,
    record_commitment,
    tick_execution_duration_seconds,
    track_command_duration,
    update_status_gauges,
)
from supply_deals.kernel.policy import MarketplacePolicy
from supply_deals.kernel.retry import retry_on_version_conflict
from supply_deals.kernel.time import RealTimeProvider, TimeProvider
from supply_deals.sourcing import commands
from supply_deals.sourcing.documents import (
    OfferDocument,
    RequirementDocument,
    build_offer_document,
    build_requirement_document,
    delivery_schedule,
)
from supply_deals.sourcing.edits import OfferEdit, RequirementEdit
from supply_deals.sourcing.handlers import SourcingCommandHandlers
from supply_deals.sourcing.models import (
    OfferContent,
    OfferStatus,
    RequirementContent,
    RequirementStatus,
    SellerReplyAction,
)
from supply_deals.sourcing.projections import (
    CommitmentLedger,
    OfferRegistry,
    RequirementRegistry,
)
from supply_deals.sourcing.triggers import TickResult, evaluate_stale_edit_approvals

logger = get_logger(__name__)

Decide = Callable[[str], list[Event]]


class SupplyDesk:
    """
    Supply brokerage main façade

    Provides a unified API for all system operations including:
    - User registration, verification and profile changes
    - Requirement and offer lifecycles
    - Admin moderation and break-glass overrides
    - The commitment ledger
    - Stale-approval reminders (tick)

    Commands on one requirement are serialised; a write that loses a race
    with another process reloads the aggregate and is decided again.
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: MarketplacePolicy | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        """
        Initialize the desk

        Args:
            sqlite_path: Path to SQLite database
            policy: Marketplace policy (uses defaults if None)
            time_provider: Time provider (uses real time if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or MarketplacePolicy()
        self.time_provider = time_provider or RealTimeProvider()

        # Initialize infrastructure
        self.event_store = SQLiteEventStore(str(self.sqlite_path))
        self.account_handlers = AccountCommandHandlers(self.time_provider)
        self.sourcing_handlers = SourcingCommandHandlers(self.time_provider, self.policy)
        self._locks = AggregateLocks()

        # Initialize projections
        self.users = UserRegistry()
        self.requirements = RequirementRegistry()
        self.offers = OfferRegistry()
        self.commitments = CommitmentLedger()

        # Rebuild projections from event store
        self._rebuild_projections()

    @property
    def _projections(self) -> tuple[Any, ...]:
        return (self.users, self.requirements, self.offers, self.commitments)

    def _rebuild_projections(self) -> None:
        """Rebuild all projections from event store"""
        start = time.perf_counter()
        all_events = self.event_store.load_all_events()
        for event in all_events:
            self._apply(event)
        projection_rebuild_duration_seconds.observe(time.perf_counter() - start)
        self._publish_gauges()
        logger.info("Projections rebuilt", event_count=len(all_events))

    def _apply(self, event: Event) -> None:
        for projection in self._projections:
            projection.apply_event(event)

    def _resync(self, conflict: StreamVersionConflict) -> None:
        """Drop one aggregate from every projection and replay it from the store"""
        for projection in self._projections:
            projection.discard_stream(conflict.stream_id)
        for event in self.event_store.load_stream(conflict.stream_id):
            self._apply(event)

    def _publish_gauges(self) -> None:
        update_status_gauges(self.requirements.count_by_status(), self.offers.count_by_status())

    @staticmethod
    def _observe(events: list[Event]) -> None:
        for event in events:
            if event.event_type == "CommitmentRecorded":
                record_commitment(Decimal(str(event.payload["volume"])), event.payload["unit"])
            elif event.event_type == "QuantityIncreaseApproved":
                quantity_increase_decisions_total.labels(outcome="approved").inc()
            elif event.event_type == "QuantityIncreaseRejected":
                quantity_increase_decisions_total.labels(outcome="rejected").inc()

    # ========================================================================
    # Command pipeline
    # ========================================================================

    def _dispatch(
        self,
        command_type: str,
        stream_id: str | None,
        decide: Decide,
        actor_id: str | None = None,
        role: Role | None = None,
    ) -> list[Event]:
        """
        Run one command: decide, append atomically, apply

        Args:
            command_type: Name used for logs and metrics
            stream_id: Aggregate to lock, or None for a brand new stream
            decide: Handler call taking the command_id
            actor_id: Who issues the command
            role: Role the actor must hold (and be ACTIVE in), if any
        """
        command_id = generate_id()
        with LogOperation(
            logger, command_type, actor_id=actor_id, stream_id=stream_id, command_id=command_id
        ):
            run = track_command_duration(command_type)(self._execute)
            return run(command_type, stream_id, decide, command_id, actor_id, role)

    def _execute(
        self,
        command_type: str,
        stream_id: str | None,
        decide: Decide,
        command_id: str,
        actor_id: str | None,
        role: Role | None,
    ) -> list[Event]:
        if role is not None:
            self._require_active_role(actor_id, role, command_type)

        @retry_on_version_conflict(
            max_attempts=self.policy.max_conflict_retries, on_conflict=self._resync
        )
        def attempt() -> list[Event]:
            events = decide(command_id)
            if not events:
                return []
            stored = self.event_store.append(
                events[0].stream_id, events[0].version - 1, events
            )
            if stored is events:
                for event in stored:
                    self._apply(event)
            return stored

        if stream_id is None:
            events = attempt()
        else:
            with self._locks.hold(stream_id):
                events = attempt()

        self._observe(events)
        self._publish_gauges()
        return events

    def _require_active_role(self, actor_id: str | None, role: Role, command_type: str) -> None:
        if actor_id is None:
            raise UserNotFound("<anonymous>")
        user = require_user_with_role(self.users, actor_id, role)
        if user["status"] != UserStatus.ACTIVE.value:
            raise IllegalTransition("User", actor_id, user["status"], command_type)

    def _offer_stream(self, offer_id: str) -> str:
        offer = self.offers.get(offer_id)
        if offer is None:
            raise OfferNotFound(offer_id)
        return offer["requirement_id"]

    def _requirement_result(self, requirement_id: str) -> dict[str, Any]:
        return self.requirements.get(requirement_id)

    # ========================================================================
    # Accounts
    # ========================================================================

    def bootstrap_admin(self, name: str, email: str, city: str | None = None) -> dict[str, Any]:
        """Create the first, already verified, administrator"""
        command = account_commands.RegisterUser(name=name, email=email, role=Role.ADMIN, city=city)
        events = self._dispatch(
            "BootstrapAdmin",
            "bootstrap-admin",
            lambda cid: self.account_handlers.handle_bootstrap_admin(command, cid, self.users),
        )
        return self.users.get(events[0].stream_id)

    def register_user(
        self,
        name: str,
        email: str,
        role: Role | str,
        city: str | None = None,
        department: str | None = None,
        id_number: str | None = None,
        certifies_rep: bool = False,
    ) -> dict[str, Any]:
        """Self-registration; the account waits for admin verification"""
        command = account_commands.RegisterUser(
            name=name,
            email=email,
            role=Role(role),
            city=city,
            department=department,
            id_number=id_number,
            certifies_rep=certifies_rep,
        )
        events = self._dispatch(
            "RegisterUser",
            None,
            lambda cid: self.account_handlers.handle_register_user(command, cid, None),
        )
        return self.users.get(events[0].stream_id)

    def verify_user(self, admin_id: str, user_id: str) -> dict[str, Any]:
        command = account_commands.VerifyUser(user_id=user_id)
        self._dispatch(
            "VerifyUser",
            user_id,
            lambda cid: self.account_handlers.handle_verify_user(command, cid, admin_id, self.users),
            admin_id,
            Role.ADMIN,
        )
        return self.users.get(user_id)

    def set_user_status(
        self, admin_id: str, user_id: str, status: UserStatus | str, note: str | None = None
    ) -> dict[str, Any]:
        command = account_commands.SetUserStatus(
            user_id=user_id, status=UserStatus(status), note=note
        )
        self._dispatch(
            "SetUserStatus",
            user_id,
            lambda cid: self.account_handlers.handle_set_user_status(
                command, cid, admin_id, self.users
            ),
            admin_id,
            Role.ADMIN,
        )
        return self.users.get(user_id)

    def return_user(self, admin_id: str, user_id: str, note: str) -> dict[str, Any]:
        command = account_commands.ReturnUser(user_id=user_id, note=note)
        self._dispatch(
            "ReturnUser",
            user_id,
            lambda cid: self.account_handlers.handle_return_user(command, cid, admin_id, self.users),
            admin_id,
            Role.ADMIN,
        )
        return self.users.get(user_id)

    def request_profile_change(self, user_id: str, field: str, value: Any) -> dict[str, Any]:
        command = account_commands.RequestProfileChange(field=field, value=value)
        self._dispatch(
            "RequestProfileChange",
            user_id,
            lambda cid: self.account_handlers.handle_request_profile_change(
                command, cid, user_id, self.users
            ),
            user_id,
        )
        return self.users.get(user_id)

    def decide_data_change(
        self, admin_id: str, user_id: str, field: str, approve: bool
    ) -> dict[str, Any]:
        """Approve or reject one pending profile field; other fields stay pending"""
        command = account_commands.DecideDataChange(user_id=user_id, field=field, approve=approve)
        self._dispatch(
            "DecideDataChange",
            user_id,
            lambda cid: self.account_handlers.handle_decide_data_change(
                command, cid, admin_id, self.users
            ),
            admin_id,
            Role.ADMIN,
        )
        return self.users.get(user_id)

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        return self.users.get(user_id)

    def list_users(
        self, role: Role | str | None = None, status: UserStatus | str | None = None
    ) -> list[dict[str, Any]]:
        return self.users.list_users(role=role, status=status)

    # ========================================================================
    # Requirements
    # ========================================================================

    def create_requirement(
        self, buyer_id: str, content: RequirementContent | dict[str, Any]
    ) -> dict[str, Any]:
        """
        Publish a requirement for moderation

        Returns:
            Requirement dict (status PENDING_ADMIN) with requirement_id
        """
        command = commands.CreateRequirement(content=RequirementContent.model_validate(content))
        events = self._dispatch(
            "CreateRequirement",
            None,
            lambda cid: self.sourcing_handlers.handle_create_requirement(command, cid, buyer_id),
            buyer_id,
            Role.BUYER,
        )
        return self._requirement_result(events[0].stream_id)

    def create_requirement_on_behalf(
        self, admin_id: str, buyer_id: str, content: RequirementContent | dict[str, Any]
    ) -> dict[str, Any]:
        command = commands.CreateRequirementOnBehalf(
            buyer_id=buyer_id, content=RequirementContent.model_validate(content)
        )
        events = self._dispatch(
            "CreateRequirementOnBehalf",
            None,
            lambda cid: self.sourcing_handlers.handle_create_requirement_on_behalf(
                command, cid, admin_id, self.users
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(events[0].stream_id)

    def approve_requirement(self, admin_id: str, requirement_id: str) -> dict[str, Any]:
        command = commands.ApproveRequirement(requirement_id=requirement_id)
        self._dispatch(
            "ApproveRequirement",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_approve_requirement(
                command, cid, admin_id, self.requirements
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def reject_requirement(self, admin_id: str, requirement_id: str, reason: str) -> dict[str, Any]:
        command = commands.RejectRequirement(requirement_id=requirement_id, reason=reason)
        self._dispatch(
            "RejectRequirement",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_reject_requirement(
                command, cid, admin_id, self.requirements
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def return_requirement_for_edit(
        self, admin_id: str, requirement_id: str, reason: str
    ) -> dict[str, Any]:
        command = commands.ReturnRequirementForEdit(requirement_id=requirement_id, reason=reason)
        self._dispatch(
            "ReturnRequirementForEdit",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_return_requirement_for_edit(
                command, cid, admin_id, self.requirements
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def resubmit_requirement(
        self, buyer_id: str, requirement_id: str, content: RequirementContent | dict[str, Any]
    ) -> dict[str, Any]:
        command = commands.ResubmitRequirement(
            requirement_id=requirement_id, content=RequirementContent.model_validate(content)
        )
        self._dispatch(
            "ResubmitRequirement",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_resubmit_requirement(
                command, cid, buyer_id, self.requirements
            ),
            buyer_id,
        )
        return self._requirement_result(requirement_id)

    def confirm_requirement(self, buyer_id: str, requirement_id: str) -> dict[str, Any]:
        command = commands.ConfirmRequirement(requirement_id=requirement_id)
        self._dispatch(
            "ConfirmRequirement",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_confirm_requirement(
                command, cid, buyer_id, self.requirements
            ),
            buyer_id,
        )
        return self._requirement_result(requirement_id)

    def decline_requirement(
        self, buyer_id: str, requirement_id: str, reason: str | None = None
    ) -> dict[str, Any]:
        command = commands.DeclineRequirement(requirement_id=requirement_id, reason=reason)
        self._dispatch(
            "DeclineRequirement",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_decline_requirement(
                command, cid, buyer_id, self.requirements
            ),
            buyer_id,
        )
        return self._requirement_result(requirement_id)

    def request_requirement_edit(
        self, buyer_id: str, requirement_id: str, edit: RequirementEdit | dict[str, Any]
    ) -> dict[str, Any]:
        command = commands.RequestRequirementEdit(
            requirement_id=requirement_id, edit=RequirementEdit.model_validate(edit)
        )
        self._dispatch(
            "RequestRequirementEdit",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_request_requirement_edit(
                command, cid, buyer_id, self.requirements, self.commitments
            ),
            buyer_id,
        )
        return self._requirement_result(requirement_id)

    def propose_requirement_edit(
        self, admin_id: str, requirement_id: str, edit: RequirementEdit | dict[str, Any]
    ) -> dict[str, Any]:
        command = commands.ProposeRequirementEdit(
            requirement_id=requirement_id, edit=RequirementEdit.model_validate(edit)
        )
        self._dispatch(
            "ProposeRequirementEdit",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_propose_requirement_edit(
                command, cid, admin_id, self.requirements, self.commitments
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def decide_requirement_edit(
        self, actor_id: str, requirement_id: str, approve: bool
    ) -> dict[str, Any]:
        """Owner decides admin proposals; an admin decides owner requests"""
        command = commands.DecideRequirementEdit(requirement_id=requirement_id, approve=approve)
        self._dispatch(
            "DecideRequirementEdit",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_decide_requirement_edit(
                command, cid, actor_id, self.requirements, self.commitments, self.users
            ),
            actor_id,
        )
        return self._requirement_result(requirement_id)

    def request_requirement_deletion(
        self, buyer_id: str, requirement_id: str, reason: str | None = None
    ) -> dict[str, Any]:
        command = commands.RequestRequirementDeletion(requirement_id=requirement_id, reason=reason)
        self._dispatch(
            "RequestRequirementDeletion",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_request_requirement_deletion(
                command, cid, buyer_id, self.requirements
            ),
            buyer_id,
        )
        return self._requirement_result(requirement_id)

    def decide_requirement_deletion(
        self, admin_id: str, requirement_id: str, approve: bool, note: str | None = None
    ) -> dict[str, Any]:
        command = commands.DecideRequirementDeletion(
            requirement_id=requirement_id, approve=approve, note=note
        )
        self._dispatch(
            "DecideRequirementDeletion",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_decide_requirement_deletion(
                command, cid, admin_id, self.requirements
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def decide_quantity_increase(
        self, admin_id: str, requirement_id: str, approve: bool, reason: str | None = None
    ) -> dict[str, Any]:
        command = commands.DecideQuantityIncrease(
            requirement_id=requirement_id, approve=approve, reason=reason
        )
        self._dispatch(
            "DecideQuantityIncrease",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_decide_quantity_increase(
                command, cid, admin_id, self.requirements, self.offers, self.commitments
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def hide_requirement(
        self, admin_id: str, requirement_id: str, reason: str | None = None
    ) -> dict[str, Any]:
        command = commands.HideRequirement(requirement_id=requirement_id, reason=reason)
        self._dispatch(
            "HideRequirement",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_hide_requirement(
                command, cid, admin_id, self.requirements
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def reactivate_requirement(
        self, admin_id: str, requirement_id: str, reason: str | None = None
    ) -> dict[str, Any]:
        command = commands.ReactivateRequirement(requirement_id=requirement_id, reason=reason)
        self._dispatch(
            "ReactivateRequirement",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_reactivate_requirement(
                command, cid, admin_id, self.requirements
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def force_requirement_status(
        self,
        admin_id: str,
        requirement_id: str,
        status: RequirementStatus | str,
        reason: str,
    ) -> dict[str, Any]:
        command = commands.ForceRequirementStatus(
            requirement_id=requirement_id, status=RequirementStatus(status), reason=reason
        )
        self._dispatch(
            "ForceRequirementStatus",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_force_requirement_status(
                command, cid, admin_id, self.requirements
            ),
            admin_id,
            Role.ADMIN,
        )
        return self._requirement_result(requirement_id)

    def get_requirement(self, requirement_id: str) -> dict[str, Any] | None:
        return self.requirements.get(requirement_id)

    def list_requirements(
        self, status: RequirementStatus | str | None = None, buyer_id: str | None = None
    ) -> list[dict[str, Any]]:
        return self.requirements.list_requirements(status=status, buyer_id=buyer_id)

    # ========================================================================
    # Offers
    # ========================================================================

    def _offer_command(
        self,
        command_type: str,
        offer_id: str,
        decide: Decide,
        actor_id: str,
        role: Role | None = None,
    ) -> dict[str, Any]:
        self._dispatch(command_type, self._offer_stream(offer_id), decide, actor_id, role)
        return self.offers.get(offer_id)

    def create_offer(
        self, seller_id: str, requirement_id: str, content: OfferContent | dict[str, Any]
    ) -> dict[str, Any]:
        """
        Answer an ACTIVE requirement

        Returns:
            Offer dict (status PENDING_ADMIN) with offer_id
        """
        command = commands.CreateOffer(
            requirement_id=requirement_id, content=OfferContent.model_validate(content)
        )
        events = self._dispatch(
            "CreateOffer",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_create_offer(
                command, cid, seller_id, self.requirements
            ),
            seller_id,
            Role.SELLER,
        )
        return self.offers.get(events[0].payload["offer_id"])

    def create_offer_on_behalf(
        self,
        admin_id: str,
        requirement_id: str,
        seller_id: str,
        content: OfferContent | dict[str, Any],
        override_expired_window: bool = False,
    ) -> dict[str, Any]:
        command = commands.CreateOfferOnBehalf(
            requirement_id=requirement_id,
            seller_id=seller_id,
            content=OfferContent.model_validate(content),
            override_expired_window=override_expired_window,
        )
        events = self._dispatch(
            "CreateOfferOnBehalf",
            requirement_id,
            lambda cid: self.sourcing_handlers.handle_create_offer_on_behalf(
                command, cid, admin_id, self.requirements, self.users
            ),
            admin_id,
            Role.ADMIN,
        )
        return self.offers.get(events[0].payload["offer_id"])

    def approve_offer(self, admin_id: str, offer_id: str) -> dict[str, Any]:
        """Moderation approval: the offer goes to the buyer"""
        command = commands.ApproveOffer(offer_id=offer_id)
        return self._offer_command(
            "ApproveOffer",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_approve_offer(
                command, cid, admin_id, self.requirements, self.offers
            ),
            admin_id,
            Role.ADMIN,
        )

    def reject_offer(self, admin_id: str, offer_id: str, reason: str) -> dict[str, Any]:
        command = commands.RejectOffer(offer_id=offer_id, reason=reason)
        return self._offer_command(
            "RejectOffer",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_reject_offer(
                command, cid, admin_id, self.requirements, self.offers
            ),
            admin_id,
            Role.ADMIN,
        )

    def return_offer_for_edit(self, admin_id: str, offer_id: str, reason: str) -> dict[str, Any]:
        command = commands.ReturnOfferForEdit(offer_id=offer_id, reason=reason)
        return self._offer_command(
            "ReturnOfferForEdit",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_return_offer_for_edit(
                command, cid, admin_id, self.requirements, self.offers
            ),
            admin_id,
            Role.ADMIN,
        )

    def request_seller_action(self, admin_id: str, offer_id: str, message: str) -> dict[str, Any]:
        command = commands.RequestSellerAction(offer_id=offer_id, message=message)
        return self._offer_command(
            "RequestSellerAction",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_request_seller_action(
                command, cid, admin_id, self.requirements, self.offers
            ),
            admin_id,
            Role.ADMIN,
        )

    def seller_respond(
        self,
        seller_id: str,
        offer_id: str,
        action: SellerReplyAction | str,
        message: str | None = None,
    ) -> dict[str, Any]:
        command = commands.SellerRespond(
            offer_id=offer_id, action=SellerReplyAction(action), message=message
        )
        return self._offer_command(
            "SellerRespond",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_seller_respond(
                command, cid, seller_id, self.requirements, self.offers
            ),
            seller_id,
        )

    def revise_offer(
        self, seller_id: str, offer_id: str, content: OfferContent | dict[str, Any]
    ) -> dict[str, Any]:
        command = commands.ReviseOffer(offer_id=offer_id, content=OfferContent.model_validate(content))
        return self._offer_command(
            "ReviseOffer",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_revise_offer(
                command, cid, seller_id, self.requirements, self.offers
            ),
            seller_id,
        )

    def decide_offer_deletion(
        self, admin_id: str, offer_id: str, approve: bool, note: str | None = None
    ) -> dict[str, Any]:
        command = commands.DecideOfferDeletion(offer_id=offer_id, approve=approve, note=note)
        return self._offer_command(
            "DecideOfferDeletion",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_decide_offer_deletion(
                command, cid, admin_id, self.requirements, self.offers
            ),
            admin_id,
            Role.ADMIN,
        )

    def confirm_offer(self, seller_id: str, offer_id: str) -> dict[str, Any]:
        command = commands.ConfirmOffer(offer_id=offer_id)
        return self._offer_command(
            "ConfirmOffer",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_confirm_offer(
                command, cid, seller_id, self.requirements, self.offers
            ),
            seller_id,
        )

    def decline_offer(
        self, seller_id: str, offer_id: str, reason: str | None = None
    ) -> dict[str, Any]:
        command = commands.DeclineOffer(offer_id=offer_id, reason=reason)
        return self._offer_command(
            "DeclineOffer",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_decline_offer(
                command, cid, seller_id, self.requirements, self.offers
            ),
            seller_id,
        )

    def propose_offer_edit(
        self, admin_id: str, offer_id: str, edit: OfferEdit | dict[str, Any]
    ) -> dict[str, Any]:
        command = commands.ProposeOfferEdit(offer_id=offer_id, edit=OfferEdit.model_validate(edit))
        return self._offer_command(
            "ProposeOfferEdit",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_propose_offer_edit(
                command, cid, admin_id, self.requirements, self.offers
            ),
            admin_id,
            Role.ADMIN,
        )

    def decide_offer_edit(self, seller_id: str, offer_id: str, approve: bool) -> dict[str, Any]:
        command = commands.DecideOfferEdit(offer_id=offer_id, approve=approve)
        return self._offer_command(
            "DecideOfferEdit",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_decide_offer_edit(
                command, cid, seller_id, self.requirements, self.offers
            ),
            seller_id,
        )

    def buyer_approve_offer(self, buyer_id: str, offer_id: str) -> dict[str, Any]:
        """
        Buyer accepts an offer

        Returns the offer: APPROVED with a commitment on the ledger, or still
        PENDING_BUYER when it opened a quantity increase on the requirement.
        """
        command = commands.BuyerApproveOffer(offer_id=offer_id)
        return self._offer_command(
            "BuyerApproveOffer",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_buyer_approve_offer(
                command, cid, buyer_id, self.requirements, self.offers, self.commitments
            ),
            buyer_id,
        )

    def buyer_reject_offer(self, buyer_id: str, offer_id: str, reason: str) -> dict[str, Any]:
        command = commands.BuyerRejectOffer(offer_id=offer_id, reason=reason)
        return self._offer_command(
            "BuyerRejectOffer",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_buyer_reject_offer(
                command, cid, buyer_id, self.requirements, self.offers
            ),
            buyer_id,
        )

    def admin_respond(self, admin_id: str, offer_id: str, message: str) -> dict[str, Any]:
        command = commands.AdminRespond(offer_id=offer_id, message=message)
        return self._offer_command(
            "AdminRespond",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_admin_respond(
                command, cid, admin_id, self.requirements, self.offers
            ),
            admin_id,
            Role.ADMIN,
        )

    def hide_offer(self, admin_id: str, offer_id: str, reason: str | None = None) -> dict[str, Any]:
        command = commands.HideOffer(offer_id=offer_id, reason=reason)
        return self._offer_command(
            "HideOffer",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_hide_offer(
                command, cid, admin_id, self.requirements, self.offers
            ),
            admin_id,
            Role.ADMIN,
        )

    def force_offer_status(
        self, admin_id: str, offer_id: str, status: OfferStatus | str, reason: str
    ) -> dict[str, Any]:
        command = commands.ForceOfferStatus(
            offer_id=offer_id, status=OfferStatus(status), reason=reason
        )
        return self._offer_command(
            "ForceOfferStatus",
            offer_id,
            lambda cid: self.sourcing_handlers.handle_force_offer_status(
                command, cid, admin_id, self.requirements, self.offers, self.commitments
            ),
            admin_id,
            Role.ADMIN,
        )

    def get_offer(self, offer_id: str) -> dict[str, Any] | None:
        return self.offers.get(offer_id)

    def list_offers(
        self,
        requirement_id: str | None = None,
        seller_id: str | None = None,
        status: OfferStatus | str | None = None,
    ) -> list[dict[str, Any]]:
        return self.offers.list_offers(
            requirement_id=requirement_id, seller_id=seller_id, status=status
        )

    def communication_log(self, offer_id: str) -> list[dict[str, Any]]:
        self._offer_stream(offer_id)
        return list(self.offers.get(offer_id)["communication_log"])

    def latest_feedback(
        self, offer_id: str, kinds: set[str] | None = None
    ) -> dict[str, Any] | None:
        """Newest log entry of the given kinds, shown as the offer's reason/feedback"""
        self._offer_stream(offer_id)
        return self.offers.latest_log_entry(offer_id, kinds)

    # ========================================================================
    # Ledger, documents, health
    # ========================================================================

    def ledger(self, requirement_id: str) -> dict[str, Any]:
        """Committed, remaining and the commitments of one requirement"""
        if self.requirements.get(requirement_id) is None:
            raise RequirementNotFound(requirement_id)
        return self.commitments.to_dict(
            requirement_id, self.requirements.total_volume(requirement_id)
        )

    def total_committed(self, requirement_id: str) -> Decimal:
        return self.commitments.total_committed(requirement_id)

    def requirement_document(self, viewer_id: str, requirement_id: str) -> RequirementDocument:
        viewer = self._viewer(viewer_id)
        requirement = self.requirements.get(requirement_id)
        if requirement is None:
            raise RequirementNotFound(requirement_id)
        return build_requirement_document(
            requirement, self.commitments, self.users, viewer, self.time_provider.now()
        )

    def offer_document(self, viewer_id: str, offer_id: str) -> OfferDocument:
        viewer = self._viewer(viewer_id)
        requirement = self.requirements.get(self._offer_stream(offer_id))
        return build_offer_document(
            self.offers.get(offer_id), requirement, self.users, viewer, self.time_provider.now()
        )

    def delivery_schedule(self, requirement_id: str) -> dict[str, Any]:
        requirement = self.requirements.get(requirement_id)
        if requirement is None:
            raise RequirementNotFound(requirement_id)
        return delivery_schedule(requirement, self.policy)

    def _viewer(self, viewer_id: str) -> dict[str, Any]:
        viewer = self.users.get(viewer_id)
        if viewer is None:
            raise UserNotFound(viewer_id)
        return viewer

    def tick(self) -> TickResult:
        """
        Run the periodic checks

        Emits overdue reminders for admin-proposed edits. A stream that
        moved since the check is skipped; the next tick picks it up.
        """
        tick_id = generate_id()
        now = self.time_provider.now()
        start = time.perf_counter()

        with LogOperation(logger, "tick", tick_id=tick_id):
            reminders = evaluate_stale_edit_approvals(
                self.requirements, self.offers, now, self.policy, tick_id
            )
            by_stream: dict[str, list[Event]] = {}
            for event in reminders:
                by_stream.setdefault(event.stream_id, []).append(event)

            appended: list[Event] = []
            for stream_id, batch in by_stream.items():
                with self._locks.hold(stream_id):
                    if self.requirements.get(stream_id)["version"] != batch[0].version - 1:
                        logger.info("Stream moved during tick, skipping", stream_id=stream_id)
                        continue
                    for event in self.event_store.append(stream_id, batch[0].version - 1, batch):
                        self._apply(event)
                    appended.extend(batch)

        tick_execution_duration_seconds.observe(time.perf_counter() - start)
        return TickResult(tick_id=tick_id, tick_at=now, triggered_events=appended)

    def health_stats(self) -> dict[str, Any]:
        """Counts for the health endpoint and the CLI"""
        return {
            "events": self.event_store.count_events(),
            "streams": self.event_store.count_streams(),
            "users": len(self.users.users),
            "requirements": self.requirements.count_by_status(),
            "offers": self.offers.count_by_status(),
            "commitments": len(self.commitments.commitments),
        }

    def get_policy(self) -> MarketplacePolicy:
        return self.policy
