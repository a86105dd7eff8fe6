"""Role and permission administration endpoints plus the caller's RBAC view."""
from __future__ import annotations
import time

from flask import Blueprint, current_app, jsonify, session

from app.api.decorators import current_identity, get_runtime
from app.api.helpers.session import MISMATCH_SINCE_KEY, clear_session_tokens, current_session
from app.core.operations import (
    assign_role_to_user,
    get_my_rbac,
    get_role_permissions,
    list_permissions,
    list_roles,
    list_roles_for_invite,
    remove_role_from_user,
)
from app.core.session_state import RbacStatus, classify_rbac_state

bp = Blueprint("rbac", __name__)


@bp.route("/roles")
def roles():
    return jsonify(list_roles(get_runtime(), current_identity()))


@bp.route("/roles/invite")
def roles_for_invite():
    return jsonify(list_roles_for_invite(get_runtime(), current_identity()))


@bp.route("/permissions")
def permissions():
    return jsonify(list_permissions(get_runtime(), current_identity()))


@bp.route("/roles/<role_id>/permissions")
def role_permissions(role_id):
    return jsonify(get_role_permissions(get_runtime(), current_identity(), role_id=role_id))


@bp.route("/users/<user_id>/roles/<role_id>", methods=["PUT"])
def assign_role(user_id, role_id):
    assign_role_to_user(get_runtime(), current_identity(), user_id=user_id, role_id=role_id)
    return jsonify({"success": True})


@bp.route("/users/<user_id>/roles/<role_id>", methods=["DELETE"])
def remove_role(user_id, role_id):
    remove_role_from_user(get_runtime(), current_identity(), user_id=user_id, role_id=role_id)
    return jsonify({"success": True})


@bp.route("/me")
def me():
    """Caller's RBAC view with a client-facing ``status``.

    A signed-in session whose account cannot be resolved is reported as
    ``loading`` during the grace window, then the session is dropped.
    """
    cfg = current_app.config["APP_CONFIG"]
    result = get_my_rbac(get_runtime(), current_identity())
    has_session = current_session() is not None

    status, since = classify_rbac_state(
        has_session=has_session,
        rbac_view=result,
        mismatch_since=session.get(MISMATCH_SINCE_KEY),
        now=time.time(),
        grace_ms=cfg.stale_session_grace_ms,
    )
    if since is not None:
        session[MISMATCH_SINCE_KEY] = since
    else:
        session.pop(MISMATCH_SINCE_KEY, None)

    if status is RbacStatus.NOT_AUTHENTICATED and has_session:
        current_app.logger.info("Session identity has no account after grace window; signing out")
        clear_session_tokens()

    return jsonify(dict(result, status=status.value))
