"""
Account command handlers

Same shape as the sourcing handlers: validate against the UserRegistry
projection, return events, never touch state directly.
"""

from typing import Any

from supply_deals.accounts import commands, events
from supply_deals.accounts.models import PROFILE_CHANGE_FIELDS, USER_STREAM, Role, UserStatus
from supply_deals.accounts.projections import UserRegistry
from supply_deals.kernel.errors import (
    IllegalTransition,
    InvalidInput,
    InvalidProfileField,
    ReasonRequired,
    UserNotFound,
)
from supply_deals.kernel.events import Event, create_event
from supply_deals.kernel.ids import generate_id
from supply_deals.kernel.time import TimeProvider


class AccountCommandHandlers:
    """Stateless handlers for user registration, status and profile changes"""

    def __init__(self, time_provider: TimeProvider):
        self.time_provider = time_provider

    def _event(
        self,
        user_id: str,
        event_type: str,
        payload: dict[str, Any],
        version: int,
        command_id: str,
        actor_id: str,
    ) -> Event:
        return create_event(
            event_id=generate_id(),
            stream_id=user_id,
            stream_type=USER_STREAM,
            event_type=event_type,
            occurred_at=self.time_provider.now(),
            actor_id=actor_id,
            command_id=command_id,
            payload=payload,
            version=version,
        )

    @staticmethod
    def _load_user(users: UserRegistry, user_id: str) -> dict[str, Any]:
        user = users.get(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def handle_register_user(
        self, command: commands.RegisterUser, command_id: str, actor_id: str | None
    ) -> list[Event]:
        """New users wait for an admin to verify them"""
        user_id = generate_id()
        payload = events.UserRegistered(
            user_id=user_id,
            name=command.name,
            email=command.email,
            role=command.role.value,
            status=UserStatus.PENDING_VERIFICATION.value,
            city=command.city,
            department=command.department,
            id_number=command.id_number,
            certifies_rep=command.certifies_rep,
            registered_at=self.time_provider.now(),
        ).model_dump(mode="json")
        return [
            self._event(user_id, "UserRegistered", payload, 1, command_id, actor_id or user_id)
        ]

    def handle_bootstrap_admin(
        self, command: commands.RegisterUser, command_id: str, users: UserRegistry
    ) -> list[Event]:
        """
        Register and verify the first administrator in one step

        Raises:
            InvalidInput: Not an admin registration, or an admin already exists
        """
        if command.role != Role.ADMIN:
            raise InvalidInput("Only an administrator can be bootstrapped")
        if users.list_users(role=Role.ADMIN):
            raise InvalidInput("An administrator already exists")

        registered = self.handle_register_user(command, command_id, None)
        user_id = registered[0].stream_id
        payload = events.UserVerified(
            user_id=user_id,
            verified_at=self.time_provider.now(),
            verified_by=user_id,
        ).model_dump(mode="json")
        return registered + [
            self._event(user_id, "UserVerified", payload, 2, command_id, user_id)
        ]

    def handle_verify_user(
        self, command: commands.VerifyUser, command_id: str, actor_id: str, users: UserRegistry
    ) -> list[Event]:
        user = self._load_user(users, command.user_id)
        if user["status"] != UserStatus.PENDING_VERIFICATION.value:
            raise IllegalTransition("User", command.user_id, user["status"], "VERIFY")

        payload = events.UserVerified(
            user_id=command.user_id,
            verified_at=self.time_provider.now(),
            verified_by=actor_id,
        ).model_dump(mode="json")
        return [
            self._event(
                command.user_id, "UserVerified", payload, user["version"] + 1, command_id, actor_id
            )
        ]

    def handle_set_user_status(
        self, command: commands.SetUserStatus, command_id: str, actor_id: str, users: UserRegistry
    ) -> list[Event]:
        """
        Activate, deactivate, block or delete a user

        Deleted users stay deleted; deletion is a soft delete that keeps
        the user's history readable.
        """
        user = self._load_user(users, command.user_id)
        current = user["status"]
        if current == UserStatus.DELETED.value or current == command.status.value:
            raise IllegalTransition("User", command.user_id, current, f"SET_{command.status.value}")

        payload = events.UserStatusChanged(
            user_id=command.user_id,
            from_status=current,
            to_status=command.status.value,
            note=command.note,
            changed_at=self.time_provider.now(),
        ).model_dump(mode="json")
        return [
            self._event(
                command.user_id,
                "UserStatusChanged",
                payload,
                user["version"] + 1,
                command_id,
                actor_id,
            )
        ]

    def handle_return_user(
        self, command: commands.ReturnUser, command_id: str, actor_id: str, users: UserRegistry
    ) -> list[Event]:
        user = self._load_user(users, command.user_id)
        if not command.note.strip():
            raise ReasonRequired("Returning a user registration")
        if user["status"] == UserStatus.DELETED.value:
            raise IllegalTransition("User", command.user_id, user["status"], "RETURN")

        payload = events.UserStatusChanged(
            user_id=command.user_id,
            from_status=user["status"],
            to_status=UserStatus.PENDING_VERIFICATION.value,
            note=command.note.strip(),
            changed_at=self.time_provider.now(),
        ).model_dump(mode="json")
        return [
            self._event(
                command.user_id, "UserReturned", payload, user["version"] + 1, command_id, actor_id
            )
        ]

    def handle_request_profile_change(
        self,
        command: commands.RequestProfileChange,
        command_id: str,
        actor_id: str,
        users: UserRegistry,
    ) -> list[Event]:
        """
        File a change to a protected field on the actor's own profile

        A newer request for the same field replaces the older one.

        Raises:
            InvalidProfileField: Field is not a protected profile field
            InvalidInput: Value has the wrong shape for the field
        """
        user = self._load_user(users, actor_id)
        if command.field not in PROFILE_CHANGE_FIELDS:
            raise InvalidProfileField(command.field)
        _validate_profile_value(command.field, command.value)

        payload = events.ProfileChangeRequested(
            user_id=actor_id,
            field=command.field,
            value=command.value,
            requested_at=self.time_provider.now(),
        ).model_dump(mode="json")
        return [
            self._event(
                actor_id, "ProfileChangeRequested", payload, user["version"] + 1, command_id, actor_id
            )
        ]

    def handle_decide_data_change(
        self,
        command: commands.DecideDataChange,
        command_id: str,
        actor_id: str,
        users: UserRegistry,
    ) -> list[Event]:
        """Approve (apply) or reject (drop) exactly one pending field"""
        user = self._load_user(users, command.user_id)
        if command.field not in user["pending_changes"]:
            raise InvalidInput(f"User {command.user_id} has no pending change for '{command.field}'")

        payload = events.DataChangeDecided(
            user_id=command.user_id,
            field=command.field,
            value=user["pending_changes"][command.field],
            approved=command.approve,
            decided_at=self.time_provider.now(),
            decided_by=actor_id,
        ).model_dump(mode="json")
        return [
            self._event(
                command.user_id,
                "DataChangeDecided",
                payload,
                user["version"] + 1,
                command_id,
                actor_id,
            )
        ]


def _validate_profile_value(field: str, value: Any) -> None:
    if field == "certifies_rep":
        if not isinstance(value, bool):
            raise InvalidInput("certifies_rep must be true or false")
        return
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} must be a non-empty text")
    if field == "email" and "@" not in value:
        raise InvalidInput("email must contain '@'")
