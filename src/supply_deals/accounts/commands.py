"""Account commands"""

from typing import Any

from pydantic import BaseModel, Field

from supply_deals.accounts.models import Role, UserStatus


class RegisterUser(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: Role
    city: str | None = None
    department: str | None = None
    id_number: str | None = None
    certifies_rep: bool = False


class VerifyUser(BaseModel):
    user_id: str


class SetUserStatus(BaseModel):
    user_id: str
    status: UserStatus
    note: str | None = None


class ReturnUser(BaseModel):
    """Admin sends a registration back with a note"""

    user_id: str
    note: str


class RequestProfileChange(BaseModel):
    """User asks to change one protected profile field"""

    field: str
    value: Any


class DecideDataChange(BaseModel):
    """Admin approves or rejects one pending profile change"""

    user_id: str
    field: str
    approve: bool
