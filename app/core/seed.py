"""Seed data and first-administrator bootstrap.

Both functions are idempotent and safe to run on every deployment.
"""
from __future__ import annotations
import logging
from typing import Optional

from sqlalchemy.orm import Session

from .accounts import AccountStore
from .identity.exceptions import IdentityAlreadyExistsError
from .identity.provider import IdentityProvider
from .models import Account, AccountStatus, Role
from .permissions import ADMINISTRATOR_ROLE, DEFAULT_PERMISSIONS, DEFAULT_ROLES
from .rbac_store import RbacStore

logger = logging.getLogger(__name__)


def seed_rbac(session: Session) -> dict[str, Role]:
    """Create the built-in permissions and roles and grant the defaults.

    Returns:
        Built-in roles keyed by name
    """
    store = RbacStore(session)
    permissions = {
        key: store.create_permission(key, description)
        for key, description in DEFAULT_PERMISSIONS.items()
    }

    roles: dict[str, Role] = {}
    for name, definition in DEFAULT_ROLES.items():
        role = store.create_role(name, definition["description"], is_superuser=definition["is_superuser"])
        if definition["is_superuser"] and not role.is_superuser:
            role.is_superuser = True
        for key in definition["permissions"]:
            store.assign_permission(role.id, permissions[key].id)
        roles[name] = role

    session.flush()
    logger.info("Seeded %d permissions and %d roles", len(permissions), len(roles))
    return roles


def bootstrap_admin(
    session: Session,
    provider: IdentityProvider,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: Optional[str] = None,
) -> Account:
    """Create (or reuse) an active account holding the administrator role."""
    roles = seed_rbac(session)
    accounts = AccountStore(session)

    account = accounts.get_by_email(email)
    if account is None:
        try:
            identity = provider.create_identity(email, password, f"{first_name} {last_name}")
        except IdentityAlreadyExistsError:
            identity = provider.find_identity_by_email(email)
            if identity is None:
                raise
            logger.info("Reusing existing identity %s for bootstrap admin", identity.id)
        account = accounts.create(
            external_identity_ref=identity.id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            status=AccountStatus.ACTIVE,
        )

    RbacStore(session).assign_role(account.id, roles[ADMINISTRATOR_ROLE].id)
    return account
