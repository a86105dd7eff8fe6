"""Built-in role and permission catalogue."""
from __future__ import annotations

RBAC_MANAGE = "rbac.manage"
USER_LIST = "user.list"
USER_CREATE = "user.create"
USER_UPDATE = "user.update"
USER_DELETE = "user.delete"

ADMINISTRATOR_ROLE = "administrator"
USER_ROLE = "user"

DEFAULT_PERMISSIONS = {
    RBAC_MANAGE: "Manage roles and permissions",
    USER_LIST: "View list of users",
    USER_CREATE: "Invite new users",
    USER_UPDATE: "Edit user details",
    USER_DELETE: "Delete or block users",
}

DEFAULT_ROLES = {
    ADMINISTRATOR_ROLE: {
        "description": "Full system access - bypasses all permission checks",
        "is_superuser": True,
        "permissions": [],
    },
    USER_ROLE: {
        "description": "Standard user with basic permissions",
        "is_superuser": False,
        "permissions": [USER_LIST],
    },
}
