"""RBAC view of the current caller, used by clients to decide what to show."""
from __future__ import annotations

from ..gate import public_query
from ..models import AccountStatus
from ..rbac import load_account_snapshot

ANONYMOUS = {"isAuthenticated": False, "isBlocked": False, "user": None}


@public_query()
def get_my_rbac(ctx, args, snapshot):
    """``{isAuthenticated, isBlocked, user}``; never raises for anonymous callers."""
    if ctx.identity is None:
        return dict(ANONYMOUS)

    account = ctx.accounts.get_by_external_ref(ctx.identity.id)
    if account is None:
        return dict(ANONYMOUS)
    if account.status == AccountStatus.BLOCKED.value:
        return {"isAuthenticated": False, "isBlocked": True, "user": None}

    own = load_account_snapshot(ctx.session, account.id, superuser_role_name=ctx.runtime.superuser_role_name)
    return {"isAuthenticated": True, "isBlocked": False, "user": own.to_dict()}
