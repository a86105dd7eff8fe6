"""Role and permission administration operations."""
from __future__ import annotations

from ..errors import ValidationError
from ..gate import secured_mutation, secured_query
from ..permissions import RBAC_MANAGE, USER_CREATE
from ..rbac import PermissionView, RoleView


@secured_query(permission=RBAC_MANAGE)
def list_roles(ctx, args, snapshot):
    return [RoleView.from_model(role).to_dict() for role in ctx.rbac.list_roles()]


@secured_query(permission=USER_CREATE)
def list_roles_for_invite(ctx, args, snapshot):
    """Role choices for the invitation form (id and name only)."""
    return [{"id": role.id, "name": role.name} for role in ctx.rbac.list_roles()]


@secured_query(permission=RBAC_MANAGE)
def list_permissions(ctx, args, snapshot):
    return [PermissionView.from_model(permission).to_dict() for permission in ctx.rbac.list_permissions()]


@secured_query(permission=RBAC_MANAGE)
def get_role_permissions(ctx, args, snapshot):
    """Permission ids granted to ``role_id``; empty when it has none."""
    return ctx.rbac.permission_ids_for_role(args.get("role_id", ""))


def _require_account_and_role(ctx, account_id: str, role_id: str) -> None:
    if ctx.accounts.get(account_id) is None:
        raise ValidationError("User not found")
    if ctx.rbac.get_role(role_id) is None:
        raise ValidationError("Role not found")


@secured_mutation(permission=RBAC_MANAGE)
def assign_role_to_user(ctx, args, snapshot):
    """Idempotent: assigning an already assigned role changes nothing."""
    account_id, role_id = args.get("user_id", ""), args.get("role_id", "")
    _require_account_and_role(ctx, account_id, role_id)
    ctx.rbac.assign_role(account_id, role_id)
    return None


@secured_mutation(permission=RBAC_MANAGE)
def remove_role_from_user(ctx, args, snapshot):
    ctx.rbac.remove_role(args.get("user_id", ""), args.get("role_id", ""))
    return None
