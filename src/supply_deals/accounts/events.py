"""Account events"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class UserRegistered(BaseModel):
    user_id: str
    name: str
    email: str
    role: str
    status: str
    city: str | None = None
    department: str | None = None
    id_number: str | None = None
    certifies_rep: bool = False
    registered_at: datetime


class UserVerified(BaseModel):
    user_id: str
    verified_at: datetime
    verified_by: str


class UserStatusChanged(BaseModel):
    user_id: str
    from_status: str
    to_status: str
    note: str | None = None
    changed_at: datetime


class ProfileChangeRequested(BaseModel):
    user_id: str
    field: str
    value: Any
    requested_at: datetime


class DataChangeDecided(BaseModel):
    user_id: str
    field: str
    value: Any
    approved: bool
    decided_at: datetime
    decided_by: str
