"""
User registry projection

Also answers the role checks the sourcing handlers need when an admin files
something on a user's behalf.
"""

from typing import Any

from supply_deals.accounts.models import USER_STREAM, Role, UserStatus
from supply_deals.kernel.errors import RoleMismatch, UserNotFound
from supply_deals.kernel.events import Event


class UserRegistry:
    """Users keyed by id, with their pending profile changes"""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        if event.stream_type != USER_STREAM:
            return

        if event.event_type == "UserRegistered":
            self._apply_registered(event)
        elif event.event_type == "UserVerified":
            user = self.users[event.stream_id]
            user["is_verified"] = True
            user["status"] = UserStatus.ACTIVE.value
        elif event.event_type in ("UserStatusChanged", "UserReturned"):
            user = self.users[event.stream_id]
            user["status"] = event.payload["to_status"]
            if event.payload.get("note"):
                user["admin_notes"] = event.payload["note"]
        elif event.event_type == "ProfileChangeRequested":
            user = self.users[event.stream_id]
            user["pending_changes"][event.payload["field"]] = event.payload["value"]
        elif event.event_type == "DataChangeDecided":
            self._apply_data_change_decided(event)

        if event.stream_id in self.users:
            self.users[event.stream_id]["version"] = event.version

    def _apply_registered(self, event: Event) -> None:
        payload = event.payload
        self.users[payload["user_id"]] = {
            "user_id": payload["user_id"],
            "name": payload["name"],
            "email": payload["email"],
            "role": payload["role"],
            "status": payload["status"],
            "is_verified": False,
            "city": payload.get("city"),
            "department": payload.get("department"),
            "id_number": payload.get("id_number"),
            "certifies_rep": payload.get("certifies_rep", False),
            "pending_changes": {},
            "admin_notes": None,
            "registered_at": payload["registered_at"],
            "version": event.version,
        }

    def _apply_data_change_decided(self, event: Event) -> None:
        payload = event.payload
        user = self.users[event.stream_id]
        user["pending_changes"].pop(payload["field"], None)
        if payload["approved"]:
            user[payload["field"]] = payload["value"]

    def discard_stream(self, user_id: str) -> None:
        self.users.pop(user_id, None)

    def get(self, user_id: str) -> dict[str, Any] | None:
        return self.users.get(user_id)

    def list_users(
        self, role: Role | str | None = None, status: UserStatus | str | None = None
    ) -> list[dict[str, Any]]:
        results = list(self.users.values())
        if role is not None:
            results = [u for u in results if u["role"] == Role(role).value]
        if status is not None:
            results = [u for u in results if u["status"] == UserStatus(status).value]
        return sorted(results, key=lambda u: u["registered_at"])

    def with_pending_changes(self) -> list[dict[str, Any]]:
        return [u for u in self.users.values() if u["pending_changes"]]


def require_user_with_role(users: UserRegistry, user_id: str, role: Role) -> dict[str, Any]:
    """
    Raises:
        UserNotFound: No such user
        RoleMismatch: User exists with another role
    """
    user = users.get(user_id)
    if user is None:
        raise UserNotFound(user_id)
    if user["role"] != role.value:
        raise RoleMismatch(user_id, role.value)
    return user
