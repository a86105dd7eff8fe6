"""Role-Based Access Control: per-request snapshot resolution and checks.

A snapshot is the account behind an external identity together with its
roles and the deduplicated union of their permissions. It is recomputed on
every call so role and permission edits apply to the very next request.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from .accounts import AccountStore
from .errors import AccountNotProvisioned, Forbidden, NotAuthenticated
from .identity.provider import ExternalIdentity
from .models import Permission, Role
from .rbac_store import RbacStore

logger = logging.getLogger(__name__)

# Name match kept for compatibility with existing data; prefer Role.is_superuser.
SUPERUSER_ROLE_NAME = "administrator"


@dataclass(frozen=True)
class RoleView:
    id: str
    name: str
    description: Optional[str] = None
    is_superuser: bool = False

    @classmethod
    def from_model(cls, role: Role) -> "RoleView":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            is_superuser=bool(role.is_superuser),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isSuperuser": self.is_superuser,
        }


@dataclass(frozen=True)
class PermissionView:
    id: str
    key: str
    resource: str
    action: str
    description: Optional[str] = None

    @classmethod
    def from_model(cls, permission: Permission) -> "PermissionView":
        return cls(
            id=permission.id,
            key=permission.key,
            resource=permission.resource,
            action=permission.action,
            description=permission.description,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "resource": self.resource,
            "action": self.action,
            "description": self.description,
        }


@dataclass(frozen=True)
class RbacSnapshot:
    """Roles and effective permissions of one account, detached from the session."""

    account_id: str
    roles: tuple[RoleView, ...] = field(default_factory=tuple)
    permissions: tuple[PermissionView, ...] = field(default_factory=tuple)
    superuser_role_name: str = SUPERUSER_ROLE_NAME

    @property
    def permission_keys(self) -> frozenset[str]:
        return frozenset(permission.key for permission in self.permissions)

    @property
    def is_superuser(self) -> bool:
        return any(
            role.is_superuser or role.name == self.superuser_role_name
            for role in self.roles
        )

    def has_permission(self, key: str) -> bool:
        """Superusers hold every key, including keys that do not exist."""
        return self.is_superuser or key in self.permission_keys

    def to_dict(self) -> dict:
        return {
            "appUserId": self.account_id,
            "roles": [role.to_dict() for role in self.roles],
            "permissions": [permission.to_dict() for permission in self.permissions],
        }


def load_account_snapshot(
    session: Session,
    account_id: str,
    superuser_role_name: str = SUPERUSER_ROLE_NAME,
) -> RbacSnapshot:
    """Build the snapshot for an account already known to exist."""
    store = RbacStore(session)
    roles = store.roles_for_account(account_id)
    permissions = store.permissions_for_roles(role.id for role in roles)
    return RbacSnapshot(
        account_id=account_id,
        roles=tuple(RoleView.from_model(role) for role in roles),
        permissions=tuple(PermissionView.from_model(permission) for permission in permissions),
        superuser_role_name=superuser_role_name,
    )


def resolve_snapshot(
    session: Session,
    identity: Optional[ExternalIdentity],
    superuser_role_name: str = SUPERUSER_ROLE_NAME,
) -> RbacSnapshot:
    """Resolve external identity -> account -> roles -> permissions.

    Raises:
        NotAuthenticated: No identity on the request
        AccountNotProvisioned: Identity without a linked account
    """
    if identity is None or not identity.id:
        raise NotAuthenticated()

    account = AccountStore(session).get_by_external_ref(identity.id)
    if account is None:
        logger.info("No account linked to external identity %s", identity.id)
        raise AccountNotProvisioned()

    return load_account_snapshot(session, account.id, superuser_role_name=superuser_role_name)


def require_permission(snapshot: RbacSnapshot, permission: str) -> None:
    """Raise ``Forbidden`` unless the snapshot grants ``permission``."""
    if snapshot.has_permission(permission):
        return
    logger.warning("Account %s denied: missing permission %s", snapshot.account_id, permission)
    raise Forbidden(permission)


def authorize(
    session: Session,
    identity: Optional[ExternalIdentity],
    permission: Optional[str] = None,
    superuser_role_name: str = SUPERUSER_ROLE_NAME,
) -> RbacSnapshot:
    """Authenticate, then check ``permission`` when one is required."""
    snapshot = resolve_snapshot(session, identity, superuser_role_name=superuser_role_name)
    if permission:
        require_permission(snapshot, permission)
    return snapshot
