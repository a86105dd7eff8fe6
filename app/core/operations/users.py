"""User management operations: listing, profile, status, invitation."""
from __future__ import annotations
import logging
import secrets
import smtplib
import string

import requests
from sqlalchemy.exc import IntegrityError

from ..accounts import AccountStore, serialize_account
from ..errors import ConflictError, DependencyError, ValidationError, failure
from ..gate import public_query, secured_action, secured_mutation, secured_query
from ..identity.exceptions import IdentityAlreadyExistsError, IdentityProviderError, InvalidCredentialsError
from ..models import AccountStatus
from ..permissions import USER_CREATE, USER_LIST, USER_UPDATE
from ..rbac_store import RbacStore
from ..validators import validate_email, validate_name, validate_password, validate_phone, validate_status

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "A user with this email already exists"

# Failures of the identity provider or the mail relay.
EXTERNAL_ERRORS = (IdentityProviderError, requests.RequestException, smtplib.SMTPException, OSError)


def generate_random_password(length: int = 32) -> str:
    """Password for invited identities; it is never shown or sent to anyone."""
    alphabet = string.ascii_letters + string.digits + "!@#$%^&*()-_=+"
    return "".join(secrets.choice(alphabet) for _ in range(length))


# ─────────────────────────────────────────────────────────────────────────────
# Queries and mutations
# ─────────────────────────────────────────────────────────────────────────────
@secured_query(permission=USER_LIST)
def list_users(ctx, args, snapshot):
    accounts = ctx.accounts.list_all()
    roles = ctx.rbac.roles_by_account(account.id for account in accounts)
    return [serialize_account(account, roles[account.id]) for account in accounts]


@secured_query()
def get_current_user_profile(ctx, args, snapshot):
    account = ctx.accounts.get(snapshot.account_id)
    return serialize_account(account, list(snapshot.roles))


@secured_mutation(permission=USER_UPDATE)
def update_user_status(ctx, args, snapshot):
    """Administrative status change (block / unblock / re-invite state)."""
    try:
        status = validate_status(args.get("status", ""))
    except ValueError as exc:
        raise ValidationError(str(exc))

    account = ctx.accounts.get(args.get("user_id", ""))
    if account is None:
        raise ValidationError("User not found")

    ctx.accounts.set_status(account, status)
    logger.info("Account %s set to %s by account %s", account.id, status.value, snapshot.account_id)
    return serialize_account(account, ctx.rbac.roles_for_account(account.id))


@public_query()
def is_user_blocked_by_email(ctx, args, snapshot):
    """Advisory check shown before a reset request; the reset flow enforces it again."""
    try:
        email = validate_email(args.get("email", ""))
    except ValueError:
        return False
    return ctx.accounts.is_blocked_by_email(email)


# ─────────────────────────────────────────────────────────────────────────────
# Invitation
# ─────────────────────────────────────────────────────────────────────────────
def _email_taken(session, email: str) -> bool:
    return AccountStore(session).get_by_email(email) is not None


def _role_exists(session, role_id: str) -> bool:
    return RbacStore(session).get_role(role_id) is not None


def _create_invited_account(session, identity_ref, email, first_name, last_name, phone, role_id) -> str:
    account = AccountStore(session).create(
        external_identity_ref=identity_ref,
        email=email,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        status=AccountStatus.INVITATION_SENT,
    )
    RbacStore(session).assign_role(account.id, role_id)
    return account.id


@secured_action(permission=USER_CREATE)
def invite_user(ctx, args, snapshot):
    """Create identity, account and role edge, then send the invitation email.

    Returns ``{"success": True, "userId": ...}`` or a ``failure(...)`` value.
    """
    try:
        email = validate_email(args.get("email", ""))
        first_name = validate_name(args.get("first_name", ""), "First name")
        last_name = validate_name(args.get("last_name", ""), "Last name")
        phone = validate_phone(args.get("phone"))
    except ValueError as exc:
        return failure(ValidationError(str(exc)))

    role_id = args.get("role_id") or ""
    if ctx.run_query(_email_taken, email=email):
        return failure(ConflictError(DUPLICATE_EMAIL_MESSAGE))
    if not role_id or not ctx.run_query(_role_exists, role_id=role_id):
        return failure(ValidationError("Role not found"))

    try:
        identity = ctx.identity_provider.create_identity(
            email,
            generate_random_password(),
            f"{first_name} {last_name}",
        )
    except IdentityAlreadyExistsError:
        return failure(ConflictError(DUPLICATE_EMAIL_MESSAGE))
    except EXTERNAL_ERRORS as exc:
        logger.error("Identity creation failed for invitation: %s", exc)
        return failure(DependencyError("The user identity could not be created"))

    try:
        account_id = ctx.run_mutation(
            _create_invited_account,
            identity_ref=identity.id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role_id=role_id,
        )
    except IntegrityError:
        # The external identity stays behind; it has to be removed by hand.
        logger.warning("Invitation lost a race; identity %s has no account", identity.id)
        return failure(ConflictError(DUPLICATE_EMAIL_MESSAGE))

    try:
        ctx.identity_provider.request_password_reset(email, ctx.runtime.password_reset_path)
    except EXTERNAL_ERRORS as exc:
        logger.error("Invitation email for account %s failed: %s", account_id, exc)
        return failure(DependencyError("The invitation email could not be sent"))

    logger.info("Account %s invited by account %s", account_id, snapshot.account_id)
    return {"success": True, "userId": account_id}


@secured_action()
def change_password(ctx, args, snapshot):
    """Change the caller's own password after checking the current one."""
    try:
        new_password = validate_password(args.get("new_password", ""), "New password")
    except ValueError as exc:
        return failure(ValidationError(str(exc)))

    try:
        ctx.identity_provider.change_password(ctx.identity, args.get("current_password", ""), new_password)
    except InvalidCredentialsError:
        return failure(ValidationError("Current password is incorrect"))
    except EXTERNAL_ERRORS as exc:
        logger.error("Password change failed for account %s: %s", snapshot.account_id, exc)
        return failure(DependencyError("The password could not be changed"))
    return {"success": True}
