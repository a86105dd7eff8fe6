"""Application operations built on the authorization gate.

Call them as ``operation(runtime, identity, **args)``.
"""
from .me import get_my_rbac
from .rbac import (
    assign_role_to_user,
    get_role_permissions,
    list_permissions,
    list_roles,
    list_roles_for_invite,
    remove_role_from_user,
)
from .users import (
    change_password,
    get_current_user_profile,
    invite_user,
    is_user_blocked_by_email,
    list_users,
    update_user_status,
)

__all__ = [
    "get_my_rbac",
    "assign_role_to_user",
    "get_role_permissions",
    "list_permissions",
    "list_roles",
    "list_roles_for_invite",
    "remove_role_from_user",
    "change_password",
    "get_current_user_profile",
    "invite_user",
    "is_user_blocked_by_email",
    "list_users",
    "update_user_status",
]
