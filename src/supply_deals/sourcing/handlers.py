"""
Sourcing Command Handlers

Transform commands into events with full validation and business logic.
Handlers never mutate projections: they read them, check the transition
tables and invariants, and return the events one command produces. The desk
appends those events in a single transaction, so a rejected command writes
nothing.

All events land on the requirement's stream, offer and ledger events
included, which is what makes "approve offer" and "record commitment" one
atomic write.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from supply_deals.accounts.models import Role
from supply_deals.accounts.projections import UserRegistry, require_user_with_role
from supply_deals.kernel.errors import (
    DuplicateCommitment,
    IllegalTransition,
    OfferNotFound,
    RequirementNotFound,
)
from supply_deals.kernel.events import Event, create_event
from supply_deals.kernel.ids import (
    COMMITMENT_KIND,
    OFFER_KIND,
    REQUIREMENT_KIND,
    generate_entity_id,
    generate_id,
    require_valid_id,
)
from supply_deals.kernel.policy import MarketplacePolicy
from supply_deals.kernel.time import TimeProvider, today
from supply_deals.sourcing import commands, events, invariants
from supply_deals.sourcing.edits import (
    load_proposed_edit,
    merge_offer_edit,
    merge_requirement_edit,
)
from supply_deals.sourcing.fees import requirement_fee
from supply_deals.sourcing.models import (
    TERMINAL_REQUIREMENT_STATUSES,
    CommunicationEntry,
    CommunicationEventType,
    OfferContent,
    OfferStatus,
    Party,
    RequirementContent,
    RequirementStatus,
    SellerReplyAction,
    requirement_title,
)
from supply_deals.sourcing.pricing import rebase_counter_proposal
from supply_deals.sourcing.projections import (
    CommitmentLedger,
    OfferRegistry,
    RequirementRegistry,
)
from supply_deals.sourcing.transitions import (
    OfferAction,
    RequirementAction,
    require_offer_transition,
    require_requirement_transition,
)

DEFAULT_EDIT_REQUEST_MESSAGE = "Solicito editar oferta."
DEFAULT_DELETE_REQUEST_MESSAGE = "Solicito cancelar oferta."
DELETION_APPROVED_MESSAGE = "Solicitud de eliminación aprobada."
DELETION_REJECTED_MESSAGE = "Solicitud de eliminación rechazada."
QUANTITY_INCREASE_REJECTED_MESSAGE = "Aumento rechazado: {reason}"

# Targets only the ledger may produce
_UNFORCEABLE_REQUIREMENT_STATUSES = frozenset(
    {RequirementStatus.COMPLETED, RequirementStatus.PENDING_QUANTITY_INCREASE}
)
_UNFORCEABLE_OFFER_STATUSES = frozenset({OfferStatus.APPROVED})

# An offer moved toward the buyer here could never be accepted
_CLOSED_REQUIREMENT_STATUSES = frozenset(status.value for status in TERMINAL_REQUIREMENT_STATUSES)


class _EventBatch:
    """Events of one command on one requirement stream, versioned in order"""

    def __init__(
        self,
        stream_id: str,
        base_version: int,
        now: datetime,
        actor_id: str,
        command_id: str,
    ) -> None:
        self.stream_id = stream_id
        self.base_version = base_version
        self.now = now
        self.actor_id = actor_id
        self.command_id = command_id
        self.events: list[Event] = []

    def add(self, event_type: str, payload: BaseModel) -> None:
        self.events.append(
            create_event(
                event_id=generate_id(),
                stream_id=self.stream_id,
                stream_type=events.REQUIREMENT_STREAM,
                event_type=event_type,
                occurred_at=self.now,
                actor_id=self.actor_id,
                command_id=self.command_id,
                payload=payload.model_dump(mode="json"),
                version=self.base_version + len(self.events) + 1,
            )
        )


class SourcingCommandHandlers:
    """
    Command handlers for requirements, offers and the commitment ledger

    Stateless handlers: receive command, validate, emit events.
    All state queries done via projections passed as parameters.
    """

    def __init__(self, time_provider: TimeProvider, policy: MarketplacePolicy):
        """
        Initialize handlers with time and marketplace policy

        Args:
            time_provider: Source of current time
            policy: Fee units, id module and moderation switches
        """
        self.time_provider = time_provider
        self.policy = policy

    # ========================================================================
    # Helpers
    # ========================================================================

    def _batch(self, requirement: dict[str, Any], command_id: str, actor_id: str) -> _EventBatch:
        return _EventBatch(
            requirement["requirement_id"],
            requirement["version"],
            self.time_provider.now(),
            actor_id,
            command_id,
        )

    @staticmethod
    def _load_requirement(
        requirements: RequirementRegistry, requirement_id: str
    ) -> dict[str, Any]:
        requirement = requirements.get(requirement_id)
        if requirement is None:
            raise RequirementNotFound(requirement_id)
        return requirement

    @staticmethod
    def _load_offer(
        offers: OfferRegistry, requirements: RequirementRegistry, offer_id: str
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        offer = offers.get(offer_id)
        if offer is None:
            raise OfferNotFound(offer_id)
        return offer, requirements.get(offer["requirement_id"])

    @staticmethod
    def _guard_triggering_offer(
        requirement: dict[str, Any], offer: dict[str, Any], action: OfferAction
    ) -> None:
        """The offer behind a pending quantity increase is frozen until the admin decides"""
        if requirement["triggering_offer_id"] == offer["offer_id"]:
            raise IllegalTransition(
                "Offer",
                offer["offer_id"],
                offer["status"],
                action.value,
                "it triggered a quantity increase awaiting an admin decision",
            )

    def _log_entry(
        self,
        author: Party,
        author_id: str,
        message: str,
        kind: CommunicationEventType,
        now: datetime,
    ) -> dict[str, Any]:
        return CommunicationEntry(
            entry_id=generate_id(),
            author=author,
            author_id=author_id,
            message=message,
            timestamp=now,
            event_type=kind,
        ).model_dump(mode="json")

    def _change_requirement_status(
        self,
        batch: _EventBatch,
        current: str,
        action: RequirementAction,
        target: RequirementStatus,
        reason: str | None = None,
    ) -> None:
        require_requirement_transition(batch.stream_id, current, action, target)
        batch.add(
            events.REQUIREMENT_STATUS_EVENT_TYPES[action],
            events.RequirementStatusChanged(
                requirement_id=batch.stream_id,
                action=action.value,
                from_status=current,
                to_status=target.value,
                reason=reason,
                changed_at=batch.now,
            ),
        )

    def _change_offer_status(
        self,
        batch: _EventBatch,
        offer: dict[str, Any],
        action: OfferAction,
        target: OfferStatus,
        reason: str | None = None,
        log_entry: dict[str, Any] | None = None,
    ) -> None:
        require_offer_transition(offer["offer_id"], offer["status"], action, target)
        batch.add(
            events.OFFER_STATUS_EVENT_TYPES[action],
            events.OfferStatusChanged(
                offer_id=offer["offer_id"],
                requirement_id=offer["requirement_id"],
                action=action.value,
                from_status=offer["status"],
                to_status=target.value,
                reason=reason,
                log_entry=log_entry,
                changed_at=batch.now,
            ),
        )

    def _record_commitment(
        self,
        batch: _EventBatch,
        offer: dict[str, Any],
        volume: Decimal,
    ) -> None:
        batch.add(
            "CommitmentRecorded",
            events.CommitmentRecorded(
                commitment_id=generate_entity_id(COMMITMENT_KIND, batch.now, self.policy.id_module),
                requirement_id=offer["requirement_id"],
                offer_id=offer["offer_id"],
                seller_id=offer["seller_id"],
                volume=volume,
                unit=offer["unit"],
                recorded_at=batch.now,
            ),
        )

    def _priced(self, content: RequirementContent) -> tuple[str, Decimal]:
        """Title and management fee for a requirement's content"""
        return content.title, requirement_fee(content.total_volume, content.unit, self.policy)

    # ========================================================================
    # Requirement Handlers
    # ========================================================================

    def handle_create_requirement(
        self,
        command: commands.CreateRequirement,
        command_id: str,
        actor_id: str,
    ) -> list[Event]:
        """
        File a requirement for moderation

        Returns:
            List containing RequirementCreated (status PENDING_ADMIN)
        """
        return self._create_requirement(
            command.content, actor_id, RequirementStatus.PENDING_ADMIN, False, command_id, actor_id
        )

    def handle_create_requirement_on_behalf(
        self,
        command: commands.CreateRequirementOnBehalf,
        command_id: str,
        actor_id: str,
        users: UserRegistry,
    ) -> list[Event]:
        """
        Admin drafts a requirement for a buyer; the buyer confirms or declines

        Raises:
            UserNotFound / RoleMismatch: buyer_id is not a buyer
        """
        require_user_with_role(users, command.buyer_id, Role.BUYER)
        return self._create_requirement(
            command.content,
            command.buyer_id,
            RequirementStatus.PENDING_BUYER_APPROVAL,
            True,
            command_id,
            actor_id,
        )

    def _create_requirement(
        self,
        content: RequirementContent,
        buyer_id: str,
        status: RequirementStatus,
        created_by_admin: bool,
        command_id: str,
        actor_id: str,
    ) -> list[Event]:
        invariants.validate_requirement_content(content)

        now = self.time_provider.now()
        requirement_id = generate_entity_id(REQUIREMENT_KIND, now, self.policy.id_module)
        title, fee = self._priced(content)

        batch = _EventBatch(requirement_id, 0, now, actor_id, command_id)
        batch.add(
            "RequirementCreated",
            events.RequirementCreated(
                requirement_id=requirement_id,
                buyer_id=buyer_id,
                content=content.model_dump(mode="json"),
                title=title,
                management_fee_per_kg=fee,
                status=status.value,
                created_by_admin=created_by_admin,
                created_at=now,
                created_by=actor_id,
            ),
        )
        return batch.events

    def handle_approve_requirement(
        self,
        command: commands.ApproveRequirement,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        requirement = self._load_requirement(requirements, command.requirement_id)
        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch, requirement["status"], RequirementAction.APPROVE, RequirementStatus.ACTIVE
        )
        return batch.events

    def handle_reject_requirement(
        self,
        command: commands.RejectRequirement,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        reason = invariants.require_reason(command.reason, "Rejecting a requirement")
        requirement = self._load_requirement(requirements, command.requirement_id)
        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch,
            requirement["status"],
            RequirementAction.REJECT,
            RequirementStatus.REJECTED,
            reason,
        )
        return batch.events

    def handle_return_requirement_for_edit(
        self,
        command: commands.ReturnRequirementForEdit,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        reason = invariants.require_reason(command.reason, "Returning a requirement for edit")
        requirement = self._load_requirement(requirements, command.requirement_id)
        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch,
            requirement["status"],
            RequirementAction.RETURN_FOR_EDIT,
            RequirementStatus.PENDING_EDIT,
            reason,
        )
        return batch.events

    def handle_resubmit_requirement(
        self,
        command: commands.ResubmitRequirement,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        """
        Owner answers a "return for edit" with corrected content

        Only a requirement that was returned (PENDING_EDIT with no parked
        edit) can be resubmitted; a parked owner edit waits for the admin.
        """
        requirement = self._load_requirement(requirements, command.requirement_id)
        invariants.require_owner(
            "Requirement", command.requirement_id, requirement["buyer_id"], actor_id
        )
        require_requirement_transition(
            command.requirement_id,
            requirement["status"],
            RequirementAction.RESUBMIT,
            RequirementStatus.PENDING_ADMIN,
        )
        if requirement["pending_edits"] is not None:
            raise IllegalTransition(
                "Requirement",
                command.requirement_id,
                requirement["status"],
                RequirementAction.RESUBMIT.value,
            )
        invariants.validate_requirement_content(command.content)

        title, fee = self._priced(command.content)
        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "RequirementResubmitted",
            events.RequirementResubmitted(
                requirement_id=command.requirement_id,
                content=command.content.model_dump(mode="json"),
                title=title,
                management_fee_per_kg=fee,
                from_status=requirement["status"],
                to_status=RequirementStatus.PENDING_ADMIN.value,
                resubmitted_at=batch.now,
            ),
        )
        return batch.events

    def handle_confirm_requirement(
        self,
        command: commands.ConfirmRequirement,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        requirement = self._load_requirement(requirements, command.requirement_id)
        invariants.require_owner(
            "Requirement", command.requirement_id, requirement["buyer_id"], actor_id
        )
        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch, requirement["status"], RequirementAction.CONFIRM, RequirementStatus.ACTIVE
        )
        return batch.events

    def handle_decline_requirement(
        self,
        command: commands.DeclineRequirement,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        requirement = self._load_requirement(requirements, command.requirement_id)
        invariants.require_owner(
            "Requirement", command.requirement_id, requirement["buyer_id"], actor_id
        )
        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch,
            requirement["status"],
            RequirementAction.DECLINE,
            RequirementStatus.CANCELLED,
            command.reason,
        )
        return batch.events

    def _validated_requirement_edit(
        self,
        requirement: dict[str, Any],
        edit: Any,
        ledger: CommitmentLedger,
    ) -> RequirementContent:
        """Merge and re-validate; a requirement never shrinks under its commitments"""
        merged = merge_requirement_edit(
            RequirementContent.model_validate(requirement["content"]), edit
        )
        invariants.validate_requirement_content(merged)
        invariants.validate_volume_covers_commitments(
            requirement["requirement_id"],
            merged.total_volume,
            ledger.total_committed(requirement["requirement_id"]),
        )
        return merged

    def handle_request_requirement_edit(
        self,
        command: commands.RequestRequirementEdit,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        ledger: CommitmentLedger,
    ) -> list[Event]:
        """Owner parks an edit on a live requirement; an admin decides"""
        requirement = self._load_requirement(requirements, command.requirement_id)
        invariants.require_owner(
            "Requirement", command.requirement_id, requirement["buyer_id"], actor_id
        )
        return self._park_requirement_edit(
            requirement,
            command.edit,
            RequirementAction.REQUEST_EDIT,
            RequirementStatus.PENDING_EDIT,
            Party.BUYER,
            events.REQUIREMENT_EDIT_REQUESTED,
            ledger,
            command_id,
            actor_id,
        )

    def handle_propose_requirement_edit(
        self,
        command: commands.ProposeRequirementEdit,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        ledger: CommitmentLedger,
    ) -> list[Event]:
        """Admin parks an edit; the owner decides"""
        requirement = self._load_requirement(requirements, command.requirement_id)
        return self._park_requirement_edit(
            requirement,
            command.edit,
            RequirementAction.PROPOSE_EDIT,
            RequirementStatus.WAITING_FOR_OWNER_EDIT_APPROVAL,
            Party.ADMIN,
            events.REQUIREMENT_EDIT_PROPOSED,
            ledger,
            command_id,
            actor_id,
        )

    def _park_requirement_edit(
        self,
        requirement: dict[str, Any],
        edit: Any,
        action: RequirementAction,
        target: RequirementStatus,
        proposed_by: Party,
        event_type: str,
        ledger: CommitmentLedger,
        command_id: str,
        actor_id: str,
    ) -> list[Event]:
        require_requirement_transition(
            requirement["requirement_id"], requirement["status"], action, target
        )
        self._validated_requirement_edit(requirement, edit, ledger)

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            event_type,
            events.RequirementEditProposed(
                requirement_id=requirement["requirement_id"],
                edit=edit.model_dump(mode="json"),
                proposed_by=proposed_by.value,
                from_status=requirement["status"],
                to_status=target.value,
                proposed_at=batch.now,
            ),
        )
        return batch.events

    def handle_decide_requirement_edit(
        self,
        command: commands.DecideRequirementEdit,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        ledger: CommitmentLedger,
        users: UserRegistry,
    ) -> list[Event]:
        """
        Approve (merge) or discard the parked edit

        The party that did not propose the edit decides: an admin for an
        owner's request (PENDING_EDIT), the owner for an admin proposal
        (WAITING_FOR_OWNER_EDIT_APPROVAL). An approved edit that brings the
        total down to what is already committed completes the requirement.

        Raises:
            IllegalTransition: No parked edit to decide
            OwnershipViolation / RoleMismatch: Wrong party deciding
            VolumeBelowCommitted: Edit would shrink under the commitments
        """
        requirement = self._load_requirement(requirements, command.requirement_id)
        status = requirement["status"]

        if status == RequirementStatus.WAITING_FOR_OWNER_EDIT_APPROVAL.value:
            invariants.require_owner(
                "Requirement", command.requirement_id, requirement["buyer_id"], actor_id
            )
            action = RequirementAction.DECIDE_ADMIN_EDIT
            event_type = events.REQUIREMENT_EDIT_DECIDED
        else:
            require_user_with_role(users, actor_id, Role.ADMIN)
            action = RequirementAction.DECIDE_OWNER_EDIT
            event_type = events.REQUIREMENT_OWNER_EDIT_DECIDED

        require_requirement_transition(
            command.requirement_id, status, action, RequirementStatus.ACTIVE
        )
        if requirement["pending_edits"] is None:
            raise IllegalTransition("Requirement", command.requirement_id, status, action.value)

        batch = self._batch(requirement, command_id, actor_id)
        if not command.approve:
            batch.add(
                event_type,
                events.RequirementEditDecided(
                    requirement_id=command.requirement_id,
                    approved=False,
                    from_status=status,
                    to_status=RequirementStatus.ACTIVE.value,
                    decided_at=batch.now,
                ),
            )
            return batch.events

        edit = load_proposed_edit(requirement["pending_edits"])
        merged = self._validated_requirement_edit(requirement, edit, ledger)
        title, fee = self._priced(merged)
        batch.add(
            event_type,
            events.RequirementEditDecided(
                requirement_id=command.requirement_id,
                approved=True,
                content=merged.model_dump(mode="json"),
                title=title,
                management_fee_per_kg=fee,
                from_status=status,
                to_status=RequirementStatus.ACTIVE.value,
                decided_at=batch.now,
            ),
        )

        committed = ledger.total_committed(command.requirement_id)
        if committed > 0 and committed >= merged.total_volume:
            self._change_requirement_status(
                batch,
                RequirementStatus.ACTIVE.value,
                RequirementAction.COMPLETE,
                RequirementStatus.COMPLETED,
            )
        return batch.events

    def handle_request_requirement_deletion(
        self,
        command: commands.RequestRequirementDeletion,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        requirement = self._load_requirement(requirements, command.requirement_id)
        invariants.require_owner(
            "Requirement", command.requirement_id, requirement["buyer_id"], actor_id
        )
        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch,
            requirement["status"],
            RequirementAction.REQUEST_DELETION,
            RequirementStatus.PENDING_DELETION,
            command.reason,
        )
        return batch.events

    def handle_decide_requirement_deletion(
        self,
        command: commands.DecideRequirementDeletion,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        """Approve cancels; reject restores the status the request came from"""
        requirement = self._load_requirement(requirements, command.requirement_id)
        if command.approve:
            target = RequirementStatus.CANCELLED
        else:
            target = RequirementStatus(
                requirement["status_before_deletion_request"] or RequirementStatus.ACTIVE
            )

        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch,
            requirement["status"],
            RequirementAction.DECIDE_DELETION,
            target,
            command.note,
        )
        return batch.events

    def handle_decide_quantity_increase(
        self,
        command: commands.DecideQuantityIncrease,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
        ledger: CommitmentLedger,
    ) -> list[Event]:
        """
        Admin rules on a pending quantity increase

        Approve: the total grows to the requested figure, the triggering
        offer is approved and its commitment recorded, and the requirement
        completes if the new total is covered.

        Reject (reason required): only the triggering offer is rejected, with
        the reason on its communication log; the requirement returns to
        ACTIVE with its original total.
        """
        requirement = self._load_requirement(requirements, command.requirement_id)
        status = requirement["status"]
        if status != RequirementStatus.PENDING_QUANTITY_INCREASE.value:
            action = (
                RequirementAction.APPROVE_QUANTITY_INCREASE
                if command.approve
                else RequirementAction.REJECT_QUANTITY_INCREASE
            )
            raise IllegalTransition("Requirement", command.requirement_id, status, action.value)

        offer = offers.get(requirement["triggering_offer_id"])
        if offer is None:
            raise OfferNotFound(requirement["triggering_offer_id"])
        batch = self._batch(requirement, command_id, actor_id)

        if not command.approve:
            reason = invariants.require_reason(command.reason, "Rejecting a quantity increase")
            require_requirement_transition(
                command.requirement_id,
                status,
                RequirementAction.REJECT_QUANTITY_INCREASE,
                RequirementStatus.ACTIVE,
            )
            self._change_offer_status(
                batch,
                offer,
                OfferAction.REJECT_QUANTITY_INCREASE,
                OfferStatus.REJECTED,
                reason,
                self._log_entry(
                    Party.ADMIN,
                    actor_id,
                    QUANTITY_INCREASE_REJECTED_MESSAGE.format(reason=reason),
                    CommunicationEventType.ADMIN_REJECTION,
                    batch.now,
                ),
            )
            batch.add(
                "QuantityIncreaseRejected",
                events.QuantityIncreaseDecided(
                    requirement_id=command.requirement_id,
                    offer_id=offer["offer_id"],
                    approved=False,
                    reason=reason,
                    from_status=status,
                    to_status=RequirementStatus.ACTIVE.value,
                    decided_at=batch.now,
                ),
            )
            return batch.events

        if ledger.has_commitment(offer["offer_id"]):
            raise DuplicateCommitment(offer["offer_id"])

        new_total = Decimal(str(requirement["pending_quantity_increase"]))
        committed = ledger.total_committed(command.requirement_id)
        volume = offers.volume(offer["offer_id"])
        invariants.validate_commitment_fits(command.requirement_id, committed, volume, new_total)

        target = (
            RequirementStatus.COMPLETED
            if committed + volume >= new_total
            else RequirementStatus.ACTIVE
        )
        require_requirement_transition(
            command.requirement_id, status, RequirementAction.APPROVE_QUANTITY_INCREASE, target
        )

        content = RequirementContent.model_validate(requirement["content"])
        self._record_commitment(batch, offer, volume)
        self._change_offer_status(
            batch, offer, OfferAction.APPROVE_QUANTITY_INCREASE, OfferStatus.APPROVED
        )
        batch.add(
            "QuantityIncreaseApproved",
            events.QuantityIncreaseDecided(
                requirement_id=command.requirement_id,
                offer_id=offer["offer_id"],
                approved=True,
                new_total=new_total,
                title=requirement_title(
                    content.subcategory or content.category, new_total, content.unit
                ),
                management_fee_per_kg=requirement_fee(new_total, content.unit, self.policy),
                from_status=status,
                to_status=target.value,
                decided_at=batch.now,
            ),
        )
        return batch.events

    def handle_hide_requirement(
        self,
        command: commands.HideRequirement,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        requirement = self._load_requirement(requirements, command.requirement_id)
        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch,
            requirement["status"],
            RequirementAction.HIDE,
            RequirementStatus.HIDDEN_BY_ADMIN,
            command.reason,
        )
        return batch.events

    def handle_reactivate_requirement(
        self,
        command: commands.ReactivateRequirement,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        requirement = self._load_requirement(requirements, command.requirement_id)
        batch = self._batch(requirement, command_id, actor_id)
        self._change_requirement_status(
            batch,
            requirement["status"],
            RequirementAction.REACTIVATE,
            RequirementStatus.ACTIVE,
            command.reason,
        )
        return batch.events

    def handle_force_requirement_status(
        self,
        command: commands.ForceRequirementStatus,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        """
        Break-glass override outside the transition table

        Refuses COMPLETED and PENDING_QUANTITY_INCREASE, which only the
        ledger may produce, and no-op forces.
        """
        reason = invariants.require_reason(command.reason, "Forcing a requirement status")
        requirement = self._load_requirement(requirements, command.requirement_id)
        current = requirement["status"]
        if command.status in _UNFORCEABLE_REQUIREMENT_STATUSES or command.status.value == current:
            raise IllegalTransition(
                "Requirement", command.requirement_id, current, f"FORCE_{command.status.value}"
            )

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "StatusForced",
            events.StatusForced(
                entity_kind="Requirement",
                entity_id=command.requirement_id,
                requirement_id=command.requirement_id,
                from_status=current,
                to_status=command.status.value,
                reason=reason,
                forced_at=batch.now,
            ),
        )
        return batch.events

    # ========================================================================
    # Offer Handlers
    # ========================================================================

    def handle_create_offer(
        self,
        command: commands.CreateOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
    ) -> list[Event]:
        """
        Seller answers an ACTIVE requirement; the offer waits for moderation

        Raises:
            InvalidEntityReference: requirement_id is not a requirement id
            IllegalTransition: Requirement is not accepting offers
            InvalidInput subclasses: Content breaks a submission rule
        """
        return self._create_offer(
            command.requirement_id,
            actor_id,
            command.content,
            OfferStatus.PENDING_ADMIN,
            False,
            False,
            requirements,
            command_id,
            actor_id,
        )

    def handle_create_offer_on_behalf(
        self,
        command: commands.CreateOfferOnBehalf,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        users: UserRegistry,
    ) -> list[Event]:
        """Admin suggests an offer for a seller; the seller confirms or declines"""
        require_user_with_role(users, command.seller_id, Role.SELLER)
        return self._create_offer(
            command.requirement_id,
            command.seller_id,
            command.content,
            OfferStatus.PENDING_SELLER_APPROVAL,
            True,
            command.override_expired_window and self.policy.allow_expired_window_override,
            requirements,
            command_id,
            actor_id,
        )

    def _create_offer(
        self,
        requirement_id: str,
        seller_id: str,
        content: OfferContent,
        status: OfferStatus,
        created_by_admin: bool,
        override_window: bool,
        requirements: RequirementRegistry,
        command_id: str,
        actor_id: str,
    ) -> list[Event]:
        require_valid_id(requirement_id, self.policy.id_module, REQUIREMENT_KIND)
        requirement = self._load_requirement(requirements, requirement_id)
        if requirement["status"] != RequirementStatus.ACTIVE.value:
            raise IllegalTransition(
                "Requirement", requirement_id, requirement["status"], "RECEIVE_OFFER"
            )

        content = self._checked_offer_content(content, requirement, override_window)

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "OfferCreated",
            events.OfferCreated(
                offer_id=generate_entity_id(OFFER_KIND, batch.now, self.policy.id_module),
                requirement_id=requirement_id,
                seller_id=seller_id,
                content=content.model_dump(mode="json"),
                unit=requirement["content"]["unit"],
                penalty_fee_per_kg=Decimal(str(requirement["management_fee_per_kg"])),
                status=status.value,
                created_by_admin=created_by_admin,
                created_at=batch.now,
                created_by=actor_id,
            ),
        )
        return batch.events

    def _simple_offer_move(
        self,
        offer_id: str,
        action: OfferAction,
        target: OfferStatus,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
        reason: str | None = None,
        log: tuple[Party, str, CommunicationEventType] | None = None,
        owner_check: bool = False,
        guard_trigger: bool = True,
        open_requirement: bool = False,
    ) -> list[Event]:
        offer, requirement = self._load_offer(offers, requirements, offer_id)
        if owner_check:
            invariants.require_owner("Offer", offer_id, offer["seller_id"], actor_id)
        if open_requirement and requirement["status"] in _CLOSED_REQUIREMENT_STATUSES:
            raise IllegalTransition(
                "Offer",
                offer_id,
                offer["status"],
                action.value,
                f"requirement {requirement['requirement_id']} is {requirement['status']}",
            )
        if guard_trigger:
            self._guard_triggering_offer(requirement, offer, action)

        batch = self._batch(requirement, command_id, actor_id)
        log_entry = None
        if log is not None:
            author, message, kind = log
            log_entry = self._log_entry(author, actor_id, message, kind, batch.now)
        self._change_offer_status(batch, offer, action, target, reason, log_entry)
        return batch.events

    def handle_approve_offer(
        self,
        command: commands.ApproveOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.APPROVE,
            OfferStatus.PENDING_BUYER,
            command_id,
            actor_id,
            requirements,
            offers,
            open_requirement=True,
        )

    def handle_reject_offer(
        self,
        command: commands.RejectOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        reason = invariants.require_reason(command.reason, "Rejecting an offer")
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.REJECT,
            OfferStatus.REJECTED,
            command_id,
            actor_id,
            requirements,
            offers,
            reason=reason,
            log=(Party.ADMIN, reason, CommunicationEventType.ADMIN_REJECTION),
        )

    def handle_return_offer_for_edit(
        self,
        command: commands.ReturnOfferForEdit,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        reason = invariants.require_reason(command.reason, "Returning an offer for edit")
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.RETURN_FOR_EDIT,
            OfferStatus.PENDING_EDIT,
            command_id,
            actor_id,
            requirements,
            offers,
            reason=reason,
            log=(Party.ADMIN, reason, CommunicationEventType.ADMIN_FEEDBACK),
        )

    def handle_request_seller_action(
        self,
        command: commands.RequestSellerAction,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        message = invariants.require_reason(command.message, "Requesting seller action")
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.REQUEST_SELLER_ACTION,
            OfferStatus.PENDING_SELLER_ACTION,
            command_id,
            actor_id,
            requirements,
            offers,
            log=(Party.ADMIN, message, CommunicationEventType.ADMIN_FEEDBACK),
        )

    def handle_seller_respond(
        self,
        command: commands.SellerRespond,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        """
        Seller answers the admin, or asks to edit / withdraw the offer

        A plain reply needs a message; edit and delete requests fall back to
        a standard message.
        """
        if command.action == SellerReplyAction.REPLY:
            message = invariants.require_reason(command.message, "Replying to the admin")
            action, target = OfferAction.SELLER_REPLY, OfferStatus.PENDING_SELLER_ACTION
        elif command.action == SellerReplyAction.REQUEST_EDIT:
            message = (command.message or "").strip() or DEFAULT_EDIT_REQUEST_MESSAGE
            action, target = OfferAction.REQUEST_EDIT, OfferStatus.PENDING_EDIT
        else:
            message = (command.message or "").strip() or DEFAULT_DELETE_REQUEST_MESSAGE
            action, target = OfferAction.REQUEST_DELETION, OfferStatus.PENDING_DELETION

        return self._simple_offer_move(
            command.offer_id,
            action,
            target,
            command_id,
            actor_id,
            requirements,
            offers,
            log=(Party.SELLER, message, CommunicationEventType.SELLER_RESPONSE),
            owner_check=True,
        )

    def handle_revise_offer(
        self,
        command: commands.ReviseOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        """Seller replaces the content; the offer goes back to moderation"""
        offer, requirement = self._load_offer(offers, requirements, command.offer_id)
        invariants.require_owner("Offer", command.offer_id, offer["seller_id"], actor_id)
        self._guard_triggering_offer(requirement, offer, OfferAction.REVISE)
        require_offer_transition(
            command.offer_id, offer["status"], OfferAction.REVISE, OfferStatus.PENDING_ADMIN
        )
        content = self._checked_offer_content(command.content, requirement)

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "OfferRevised",
            events.OfferRevised(
                offer_id=command.offer_id,
                requirement_id=offer["requirement_id"],
                content=content.model_dump(mode="json"),
                from_status=offer["status"],
                to_status=OfferStatus.PENDING_ADMIN.value,
                revised_at=batch.now,
            ),
        )
        return batch.events

    def handle_decide_offer_deletion(
        self,
        command: commands.DecideOfferDeletion,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        if command.approve:
            target, default_message = OfferStatus.HIDDEN_BY_ADMIN, DELETION_APPROVED_MESSAGE
        else:
            target, default_message = OfferStatus.PENDING_ADMIN, DELETION_REJECTED_MESSAGE
        message = (command.note or "").strip() or default_message
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.DECIDE_DELETION,
            target,
            command_id,
            actor_id,
            requirements,
            offers,
            reason=command.note,
            log=(Party.ADMIN, message, CommunicationEventType.ADMIN_RESPONSE),
        )

    def handle_confirm_offer(
        self,
        command: commands.ConfirmOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.CONFIRM,
            OfferStatus.PENDING_BUYER,
            command_id,
            actor_id,
            requirements,
            offers,
            owner_check=True,
            open_requirement=True,
        )

    def handle_decline_offer(
        self,
        command: commands.DeclineOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.DECLINE,
            OfferStatus.HIDDEN_BY_ADMIN,
            command_id,
            actor_id,
            requirements,
            offers,
            reason=command.reason,
            owner_check=True,
        )

    def handle_propose_offer_edit(
        self,
        command: commands.ProposeOfferEdit,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        """Admin parks an edit on an offer waiting for the buyer; the seller decides"""
        offer, requirement = self._load_offer(offers, requirements, command.offer_id)
        self._guard_triggering_offer(requirement, offer, OfferAction.PROPOSE_EDIT)
        target = OfferStatus.WAITING_FOR_OWNER_EDIT_APPROVAL
        require_offer_transition(command.offer_id, offer["status"], OfferAction.PROPOSE_EDIT, target)
        self._validated_offer_edit(offer, requirement, command.edit)

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "OfferEditProposed",
            events.OfferEditProposed(
                offer_id=command.offer_id,
                requirement_id=offer["requirement_id"],
                edit=command.edit.model_dump(mode="json"),
                from_status=offer["status"],
                to_status=target.value,
                proposed_at=batch.now,
            ),
        )
        return batch.events

    def _validated_offer_edit(
        self, offer: dict[str, Any], requirement: dict[str, Any], edit: Any
    ) -> OfferContent:
        merged = merge_offer_edit(OfferContent.model_validate(offer["content"]), edit)
        return self._checked_offer_content(
            merged, requirement, self.policy.allow_expired_window_override
        )

    def _checked_offer_content(
        self,
        content: OfferContent,
        requirement: dict[str, Any],
        override_window: bool = False,
    ) -> OfferContent:
        """
        Validate an offer against its requirement

        A price counter-proposal is rebuilt from the buyer's formula, so the
        stored original values and new-component flags never come from the
        seller.
        """
        requirement_content = RequirementContent.model_validate(requirement["content"])
        invariants.validate_offer_content(
            content, requirement_content, today(self.time_provider), override_window
        )

        price = content.terms.price_formula
        if price.counter_proposal is None:
            return content
        rebased = rebase_counter_proposal(price.counter_proposal, requirement_content.price_formula)
        terms = content.terms.model_copy(
            update={"price_formula": price.model_copy(update={"counter_proposal": rebased})}
        )
        return content.model_copy(update={"terms": terms})

    def handle_decide_offer_edit(
        self,
        command: commands.DecideOfferEdit,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        offer, requirement = self._load_offer(offers, requirements, command.offer_id)
        invariants.require_owner("Offer", command.offer_id, offer["seller_id"], actor_id)
        target = OfferStatus.PENDING_BUYER
        require_offer_transition(
            command.offer_id, offer["status"], OfferAction.DECIDE_ADMIN_EDIT, target
        )
        if offer["pending_edits"] is None:
            raise IllegalTransition(
                "Offer", command.offer_id, offer["status"], OfferAction.DECIDE_ADMIN_EDIT.value
            )

        merged = None
        if command.approve:
            merged = self._validated_offer_edit(
                offer, requirement, load_proposed_edit(offer["pending_edits"])
            )

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "OfferEditDecided",
            events.OfferEditDecided(
                offer_id=command.offer_id,
                requirement_id=offer["requirement_id"],
                approved=command.approve,
                content=merged.model_dump(mode="json") if merged is not None else None,
                from_status=offer["status"],
                to_status=target.value,
                decided_at=batch.now,
            ),
        )
        return batch.events

    def handle_buyer_approve_offer(
        self,
        command: commands.BuyerApproveOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
        ledger: CommitmentLedger,
    ) -> list[Event]:
        """
        Buyer accepts an offer

        If the offer fits the remaining volume it is approved and its
        commitment recorded in the same batch; a requirement covered by it
        completes. If it does not fit, nothing is committed: the requirement
        moves to PENDING_QUANTITY_INCREASE for an admin to decide and the
        offer keeps waiting.

        Raises:
            OwnershipViolation: Actor does not own the requirement
            IllegalTransition: Offer not pending buyer, or requirement not ACTIVE
            DuplicateCommitment: Offer already has a commitment
        """
        offer, requirement = self._load_offer(offers, requirements, command.offer_id)
        requirement_id = requirement["requirement_id"]
        invariants.require_owner("Requirement", requirement_id, requirement["buyer_id"], actor_id)
        require_offer_transition(
            command.offer_id, offer["status"], OfferAction.BUYER_APPROVE, OfferStatus.APPROVED
        )
        if requirement["status"] != RequirementStatus.ACTIVE.value:
            raise IllegalTransition(
                "Requirement", requirement_id, requirement["status"], "BUYER_APPROVE_OFFER"
            )
        if ledger.has_commitment(command.offer_id):
            raise DuplicateCommitment(command.offer_id)

        total = requirements.total_volume(requirement_id)
        committed = ledger.total_committed(requirement_id)
        volume = offers.volume(command.offer_id)
        batch = self._batch(requirement, command_id, actor_id)

        if committed + volume > total:
            target = RequirementStatus.PENDING_QUANTITY_INCREASE
            require_requirement_transition(
                requirement_id,
                requirement["status"],
                RequirementAction.OPEN_QUANTITY_INCREASE,
                target,
            )
            batch.add(
                "QuantityIncreaseRequested",
                events.QuantityIncreaseRequested(
                    requirement_id=requirement_id,
                    offer_id=command.offer_id,
                    current_total=total,
                    committed=committed,
                    requested_total=committed + volume,
                    from_status=requirement["status"],
                    to_status=target.value,
                    requested_at=batch.now,
                ),
            )
            return batch.events

        self._record_commitment(batch, offer, volume)
        self._change_offer_status(batch, offer, OfferAction.BUYER_APPROVE, OfferStatus.APPROVED)
        if committed + volume >= total:
            self._change_requirement_status(
                batch,
                requirement["status"],
                RequirementAction.COMPLETE,
                RequirementStatus.COMPLETED,
            )
        return batch.events

    def handle_buyer_reject_offer(
        self,
        command: commands.BuyerRejectOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        reason = invariants.require_reason(command.reason, "Rejecting an offer")
        offer, requirement = self._load_offer(offers, requirements, command.offer_id)
        invariants.require_owner(
            "Requirement", requirement["requirement_id"], requirement["buyer_id"], actor_id
        )
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.BUYER_REJECT,
            OfferStatus.REJECTED,
            command_id,
            actor_id,
            requirements,
            offers,
            reason=reason,
            log=(Party.BUYER, reason, CommunicationEventType.BUYER_REJECTION),
        )

    def handle_admin_respond(
        self,
        command: commands.AdminRespond,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        """Admin writes on the offer's log without moving its status"""
        message = invariants.require_reason(command.message, "Responding on an offer")
        offer = offers.get(command.offer_id)
        if offer is None:
            raise OfferNotFound(command.offer_id)
        return self._simple_offer_move(
            command.offer_id,
            OfferAction.ADMIN_RESPOND,
            OfferStatus(offer["status"]),
            command_id,
            actor_id,
            requirements,
            offers,
            log=(Party.ADMIN, message, CommunicationEventType.ADMIN_RESPONSE),
            guard_trigger=False,
        )

    def handle_hide_offer(
        self,
        command: commands.HideOffer,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
    ) -> list[Event]:
        """
        Hiding an approved offer leaves its commitment on the ledger

        Hiding the offer behind a pending quantity increase withdraws the
        increase in the same write: the requirement returns to ACTIVE with
        its original total.
        """
        offer, requirement = self._load_offer(offers, requirements, command.offer_id)
        batch = self._batch(requirement, command_id, actor_id)
        self._change_offer_status(
            batch, offer, OfferAction.HIDE, OfferStatus.HIDDEN_BY_ADMIN, command.reason
        )

        if requirement["triggering_offer_id"] == command.offer_id:
            status = requirement["status"]
            require_requirement_transition(
                requirement["requirement_id"],
                status,
                RequirementAction.REJECT_QUANTITY_INCREASE,
                RequirementStatus.ACTIVE,
            )
            batch.add(
                "QuantityIncreaseRejected",
                events.QuantityIncreaseDecided(
                    requirement_id=requirement["requirement_id"],
                    offer_id=command.offer_id,
                    approved=False,
                    reason=command.reason,
                    from_status=status,
                    to_status=RequirementStatus.ACTIVE.value,
                    decided_at=batch.now,
                ),
            )
        return batch.events

    def handle_force_offer_status(
        self,
        command: commands.ForceOfferStatus,
        command_id: str,
        actor_id: str,
        requirements: RequirementRegistry,
        offers: OfferRegistry,
        ledger: CommitmentLedger,
    ) -> list[Event]:
        """
        Break-glass override outside the transition table

        Refuses APPROVED (only a commitment approves an offer), offers that
        already hold a commitment, and the offer behind a pending quantity
        increase.
        """
        reason = invariants.require_reason(command.reason, "Forcing an offer status")
        offer, requirement = self._load_offer(offers, requirements, command.offer_id)
        current = offer["status"]
        action = f"FORCE_{command.status.value}"
        if (
            command.status in _UNFORCEABLE_OFFER_STATUSES
            or command.status.value == current
            or ledger.has_commitment(command.offer_id)
            or requirement["triggering_offer_id"] == command.offer_id
        ):
            raise IllegalTransition("Offer", command.offer_id, current, action)

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "StatusForced",
            events.StatusForced(
                entity_kind="Offer",
                entity_id=command.offer_id,
                requirement_id=offer["requirement_id"],
                from_status=current,
                to_status=command.status.value,
                reason=reason,
                forced_at=batch.now,
            ),
        )
        return batch.events
