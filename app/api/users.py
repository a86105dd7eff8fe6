"""User management endpoints."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.api.decorators import current_identity, get_runtime, tagged_response
from app.core.errors import ValidationError
from app.core.operations import (
    get_current_user_profile,
    invite_user,
    is_user_blocked_by_email,
    list_users,
    update_user_status,
)

bp = Blueprint("users", __name__)


@bp.route("", methods=["GET"])
def users():
    return jsonify(list_users(get_runtime(), current_identity()))


@bp.route("/me")
def profile():
    return jsonify(get_current_user_profile(get_runtime(), current_identity()))


@bp.route("/<user_id>/status", methods=["PATCH"])
def user_status(user_id):
    payload = request.get_json(silent=True) or {}
    return jsonify(update_user_status(
        get_runtime(),
        current_identity(),
        user_id=user_id,
        status=payload.get("status", ""),
    ))


@bp.route("/invite", methods=["POST"])
def invite():
    """Invite a user: ``{email, firstName, lastName, phone?, roleId}``."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("A JSON object body is required")

    result = invite_user(
        get_runtime(),
        current_identity(),
        email=payload.get("email", ""),
        first_name=payload.get("firstName", ""),
        last_name=payload.get("lastName", ""),
        phone=payload.get("phone"),
        role_id=payload.get("roleId", ""),
    )
    return tagged_response(result, success_status=201)


@bp.route("/blocked")
def blocked():
    """Public advisory check used before requesting a password reset."""
    email = request.args.get("email", "")
    return jsonify({"blocked": is_user_blocked_by_email(get_runtime(), None, email=email)})
