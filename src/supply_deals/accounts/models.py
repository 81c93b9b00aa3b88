"""
Account models

Users trade as buyers or sellers; admins moderate. Identity fields that
matter for contracts (legal name, id number, email, legal-representative
certification) cannot be edited directly: the user files a change request
and an admin approves or rejects it field by field.
"""

from enum import Enum

USER_STREAM = "user"


class Role(str, Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class UserStatus(str, Enum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    BLOCKED = "BLOCKED"
    DELETED = "DELETED"


# Fields a user can only change through an admin-approved request
PROFILE_CHANGE_FIELDS = frozenset({"name", "id_number", "email", "certifies_rep"})
