"""Classification of the caller's RBAC state for session-aware clients.

Right after sign-in the identity session may exist before the application
sees the account (replication lag, slow first write). Such a mismatch is
reported as ``loading`` for a short grace window and only then treated as
signed out.
"""
from __future__ import annotations
from enum import Enum
from typing import Optional


class RbacStatus(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    BLOCKED = "blocked"
    NOT_AUTHENTICATED = "not_authenticated"


def classify_rbac_state(
    has_session: bool,
    rbac_view: dict,
    mismatch_since: Optional[float],
    now: float,
    grace_ms: int,
) -> tuple[RbacStatus, Optional[float]]:
    """Decide the client-facing status from the session and ``getMyRbac`` result.

    Args:
        has_session: An identity session exists for the caller
        rbac_view: ``{isAuthenticated, isBlocked, user}`` as returned by ``get_my_rbac``
        mismatch_since: Epoch seconds when the mismatch was first observed, if any
        now: Current epoch seconds
        grace_ms: Window during which a mismatch is reported as loading

    Returns:
        (status, mismatch marker to keep). A marker of None clears it.
        ``NOT_AUTHENTICATED`` with ``has_session`` means the session must be dropped.
    """
    if rbac_view.get("isBlocked"):
        return RbacStatus.BLOCKED, None
    if rbac_view.get("isAuthenticated"):
        return RbacStatus.AUTHENTICATED, None
    if not has_session:
        return RbacStatus.NOT_AUTHENTICATED, None

    since = now if mismatch_since is None else mismatch_since
    if (now - since) * 1000 >= grace_ms:
        return RbacStatus.NOT_AUTHENTICATED, None
    return RbacStatus.LOADING, since
