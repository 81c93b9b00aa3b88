"""
Custom exceptions for Supply Deals

Every rejected command raises one of these before a single event is written,
so callers can map the class to a user-facing message and know that nothing
was persisted.

Four families matter to callers:
- InvalidInput: the submitted payload breaks a business rule
- IllegalTransition / OwnershipViolation: the entity is not in a state (or
  not owned by someone) that allows the action
- ReferentialError: a foreign id does not resolve
- ConsistencyError: the action would break the commitment ledger

Fun fact: Medieval wool merchants kept "tallies" - notched sticks split in two
so buyer and seller each held half. A forged half never matched. Our ledger
errors are the digital split-stick!
"""

from decimal import Decimal


class SupplyDealsError(Exception):
    """Base exception for all Supply Deals errors"""

    pass


class EventStoreError(SupplyDealsError):
    """Base class for event store errors"""

    pass


class CommandIdempotencyViolation(EventStoreError):
    """
    Raised when a command_id was already processed but its events are gone

    Normally a repeated command_id simply returns the stored events.
    """

    def __init__(self, command_id: str, message: str = "") -> None:
        self.command_id = command_id
        super().__init__(message or f"Command {command_id} already processed")


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Another writer touched the same requirement aggregate - reload and retry.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


# ============================================================================
# Validation errors (user input)
# ============================================================================


class InvalidInput(SupplyDealsError):
    """Submitted data breaks a business rule"""

    pass


class NonPositiveQuantity(InvalidInput):
    """Volumes must be strictly positive"""

    def __init__(self, field: str, value: Decimal) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field} must be greater than zero, got {value}")


class InvalidDateWindow(InvalidInput):
    """Validity window ends before it starts"""

    def __init__(self, start: object, end: object, context: str = "validity") -> None:
        self.start = start
        self.end = end
        super().__init__(f"{context} window ends ({end}) before it starts ({start})")


class OfferWindowOutsideRequirement(InvalidInput):
    """Offer validity does not fit inside the requirement validity"""

    def __init__(self, offer_window: tuple, requirement_window: tuple) -> None:
        self.offer_window = offer_window
        self.requirement_window = requirement_window
        super().__init__(
            f"Offer window {offer_window[0]}..{offer_window[1]} must lie within "
            f"requirement window {requirement_window[0]}..{requirement_window[1]}"
        )


class MissingCounterProposal(InvalidInput):
    """A declined term was submitted without a counter-proposal"""

    def __init__(self, terms: list[str]) -> None:
        self.terms = terms
        super().__init__(
            "Declined terms need a counter-proposal: " + ", ".join(terms)
        )


class PenaltyFeeNotAccepted(InvalidInput):
    """Offers can only be submitted once the penalty fee is accepted"""

    def __init__(self) -> None:
        super().__init__("The penalty fee must be accepted before submitting an offer")


class ReasonRequired(InvalidInput):
    """Rejections, returns and overrides carry a non-empty reason"""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} requires a non-empty reason")


class InvalidPriceStructure(InvalidInput):
    """Price formula or counter-proposal payload is malformed"""

    pass


class InvalidProfileField(InvalidInput):
    """Profile change targets a field that cannot be changed by request"""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Profile field '{field}' cannot be changed by request")


# ============================================================================
# Transition errors
# ============================================================================


class IllegalTransition(SupplyDealsError):
    """The entity's current status does not allow the requested action"""

    def __init__(
        self,
        entity_kind: str,
        entity_id: str,
        current_status: str,
        action: str,
        detail: str | None = None,
    ) -> None:
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        message = f"{entity_kind} {entity_id} cannot {action} while {current_status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class OwnershipViolation(SupplyDealsError):
    """Owner-only action attempted by someone else"""

    def __init__(self, entity_kind: str, entity_id: str, actor_id: str) -> None:
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.actor_id = actor_id
        super().__init__(f"{actor_id} does not own {entity_kind} {entity_id}")


# ============================================================================
# Referential errors
# ============================================================================


class ReferentialError(SupplyDealsError):
    """A foreign id does not resolve"""

    pass


class InvalidEntityReference(ReferentialError):
    """Id does not carry the expected module/kind prefix"""

    def __init__(self, entity_id: str, module: str, kind: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"'{entity_id}' is not a valid {module}-{kind} identifier")


class RequirementNotFound(ReferentialError):
    def __init__(self, requirement_id: str) -> None:
        self.requirement_id = requirement_id
        super().__init__(f"Requirement {requirement_id} not found")


class OfferNotFound(ReferentialError):
    def __init__(self, offer_id: str) -> None:
        self.offer_id = offer_id
        super().__init__(f"Offer {offer_id} not found")


class UserNotFound(ReferentialError):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class RoleMismatch(ReferentialError):
    """Target user exists but does not hold the role the action needs"""

    def __init__(self, user_id: str, expected_role: str) -> None:
        self.user_id = user_id
        self.expected_role = expected_role
        super().__init__(f"User {user_id} is not a {expected_role}")


# ============================================================================
# Ledger consistency errors
# ============================================================================


class ConsistencyError(SupplyDealsError):
    """The action would break the commitment ledger"""

    pass


class CommitmentExceedsVolume(ConsistencyError):
    def __init__(
        self,
        requirement_id: str,
        committed: Decimal,
        volume: Decimal,
        total_volume: Decimal,
    ) -> None:
        self.requirement_id = requirement_id
        self.committed = committed
        self.volume = volume
        self.total_volume = total_volume
        super().__init__(
            f"Committing {volume} to {requirement_id} would exceed its total volume "
            f"({committed} already committed of {total_volume})"
        )


class DuplicateCommitment(ConsistencyError):
    def __init__(self, offer_id: str, commitment_id: str | None = None) -> None:
        self.offer_id = offer_id
        self.commitment_id = commitment_id
        if commitment_id is not None:
            super().__init__(f"Commitment {commitment_id} is already on the ledger")
        else:
            super().__init__(f"Offer {offer_id} already has a commitment")


class VolumeBelowCommitted(ConsistencyError):
    def __init__(
        self, requirement_id: str, new_total: Decimal, committed: Decimal
    ) -> None:
        self.requirement_id = requirement_id
        self.new_total = new_total
        self.committed = committed
        super().__init__(
            f"Requirement {requirement_id} cannot shrink to {new_total}: "
            f"{committed} is already committed"
        )
