"""Authentication routes: password sign-in, sign-out, password reset and change.

Sign-in runs the lifecycle guards through the identity provider hooks, so a
blocked account is rejected before its password is checked.
"""
from __future__ import annotations
import smtplib

import requests
from flask import Blueprint, current_app, jsonify, request, session

from app.api.decorators import current_identity, get_runtime, require_identity, tagged_response
from app.api.helpers.session import clear_session_tokens, csrf_token, current_session, store_session
from app.core.errors import DependencyError, ValidationError
from app.core.identity.exceptions import IdentityProviderError, InvalidCredentialsError, InvalidResetTokenError
from app.core.operations import change_password as change_password_operation
from app.core.validators import validate_email, validate_password

bp = Blueprint("auth", __name__)

RESET_REQUESTED_MESSAGE = "If the email is registered, a reset link has been sent."
MAIL_ERRORS = (smtplib.SMTPException, OSError)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("A JSON object body is required")
    return payload


@bp.route("/csrf")
def csrf():
    """CSRF token to send back in the ``X-CSRF-Token`` header."""
    return jsonify({"csrfToken": csrf_token()})


# ─────────────────────────────────────────────────────────────────────────────
# Sign-in / sign-out
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/sign-in", methods=["POST"])
def sign_in():
    payload = _json_body()
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required")

    try:
        identity_session = get_runtime().identity_provider.sign_in(email, password)
    except InvalidCredentialsError:
        current_app.logger.info("Sign-in rejected: invalid credentials")
        return jsonify({"error": "invalid_credentials", "message": "Invalid email or password"}), 401

    # New session on privilege change
    session.clear()
    store_session(identity_session)
    identity = identity_session.identity
    current_app.logger.info("Identity %s signed in", identity.id)
    return jsonify({
        "success": True,
        "identity": {"id": identity.id, "email": identity.email, "displayName": identity.display_name},
        "csrfToken": csrf_token(),
    })


@bp.route("/sign-out", methods=["POST"])
def sign_out():
    auth = current_session()
    if auth is not None and auth.refresh_token:
        try:
            get_runtime().identity_provider.sign_out(auth.refresh_token)
        except (IdentityProviderError, requests.RequestException) as exc:
            current_app.logger.warning("Identity provider sign-out failed: %s", exc)
    session.clear()
    return jsonify({"success": True})


# ─────────────────────────────────────────────────────────────────────────────
# Password reset / change
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/reset-password", methods=["POST"])
def request_password_reset():
    """Send a reset (or invitation) link. Blocked accounts get 403."""
    payload = _json_body()
    try:
        email = validate_email(payload.get("email", ""))
    except ValueError as exc:
        raise ValidationError(str(exc))

    cfg = current_app.config["APP_CONFIG"]
    try:
        get_runtime().identity_provider.request_password_reset(email, cfg.password_reset_path)
    except MAIL_ERRORS as exc:
        current_app.logger.error("Reset email could not be sent: %s", exc)
        raise DependencyError("The reset email could not be sent")
    return jsonify({"success": True, "message": RESET_REQUESTED_MESSAGE}), 202


@bp.route("/reset-password/confirm", methods=["POST"])
def confirm_password_reset():
    payload = _json_body()
    token = payload.get("token") or request.args.get("token", "")
    if not token:
        raise ValidationError("Reset token is required")
    try:
        password = validate_password(payload.get("password", ""))
    except ValueError as exc:
        raise ValidationError(str(exc))

    try:
        get_runtime().identity_provider.complete_password_reset(token, password)
    except InvalidResetTokenError as exc:
        raise ValidationError(str(exc))

    # Every session of the identity was revoked; drop ours too
    clear_session_tokens()
    return jsonify({"success": True})


@bp.route("/change-password", methods=["POST"])
@require_identity
def change_password():
    payload = _json_body()
    result = change_password_operation(
        get_runtime(),
        current_identity(),
        current_password=payload.get("currentPassword", ""),
        new_password=payload.get("newPassword", ""),
    )
    return tagged_response(result)
