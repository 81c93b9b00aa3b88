"""
Accounts - users, roles and admin-approved profile changes
"""

from supply_deals.accounts.models import PROFILE_CHANGE_FIELDS, Role, UserStatus

__all__ = ["Role", "UserStatus", "PROFILE_CHANGE_FIELDS"]
