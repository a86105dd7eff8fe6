"""RBAC store: roles, permissions and the assignment edges between them.

Every create/assign helper is check-then-insert, so repeated calls leave a
single row. A concurrent writer can still commit the same row between the
check and the insert; the insert then yields to the unique constraint on
``roles.name``, ``permissions.key`` or the edge table and the helper returns
the row that won.
"""
from __future__ import annotations
import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Permission, Role, RoleAssignment, RolePermission

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO NOTHING
_CONFLICT_FREE_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class RbacStore:
    """Role/permission persistence inside a caller-owned session."""

    def __init__(self, session: Session):
        self.session = session

    def _insert_unless_present(self, model, **values) -> bool:
        """Insert one row unless a unique constraint says it already exists.

        Returns True when this call wrote the row. Other writes in the
        caller's transaction are left untouched either way.
        """
        insert = _CONFLICT_FREE_INSERTS.get(self.session.get_bind().dialect.name)
        if insert is not None:
            result = self.session.execute(insert(model.__table__).values(**values).on_conflict_do_nothing())
            return result.rowcount == 1
        try:
            with self.session.begin_nested():
                self.session.add(model(**values))
        except IntegrityError:
            return False
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Roles
    # ─────────────────────────────────────────────────────────────────────────
    def get_role(self, role_id: str) -> Optional[Role]:
        if not role_id:
            return None
        return self.session.get(Role, role_id)

    def get_role_by_name(self, name: str) -> Optional[Role]:
        return self.session.execute(select(Role).where(Role.name == name)).scalar_one_or_none()

    def list_roles(self) -> list[Role]:
        return list(self.session.execute(select(Role).order_by(Role.created_at, Role.name)).scalars())

    def create_role(self, name: str, description: Optional[str] = None, is_superuser: bool = False) -> Role:
        """Return the role with this name, creating it when missing."""
        existing = self.get_role_by_name(name)
        if existing is not None:
            return existing
        if self._insert_unless_present(Role, name=name, description=description, is_superuser=is_superuser):
            logger.info("Role created: %s", name)
        else:
            logger.info("Role %s was created concurrently; reusing it", name)
        return self.get_role_by_name(name)

    # ─────────────────────────────────────────────────────────────────────────
    # Permissions
    # ─────────────────────────────────────────────────────────────────────────
    def get_permission_by_key(self, key: str) -> Optional[Permission]:
        return self.session.execute(select(Permission).where(Permission.key == key)).scalar_one_or_none()

    def list_permissions(self) -> list[Permission]:
        stmt = select(Permission).order_by(Permission.resource, Permission.key)
        return list(self.session.execute(stmt).scalars())

    def create_permission(self, key: str, description: Optional[str] = None) -> Permission:
        """Return the permission with this key, creating it when missing.

        ``resource`` and ``action`` are derived from the ``<resource>.<action>`` key.
        """
        existing = self.get_permission_by_key(key)
        if existing is not None:
            return existing
        resource, _, action = key.partition(".")
        if not resource or not action:
            raise ValueError(f"Permission key must look like '<resource>.<action>' (got {key!r})")
        if self._insert_unless_present(Permission, key=key, resource=resource, action=action, description=description):
            logger.info("Permission created: %s", key)
        else:
            logger.info("Permission %s was created concurrently; reusing it", key)
        return self.get_permission_by_key(key)

    # ─────────────────────────────────────────────────────────────────────────
    # Role -> Permission edges
    # ─────────────────────────────────────────────────────────────────────────
    def _grant(self, role_id: str, permission_id: str) -> Optional[RolePermission]:
        stmt = select(RolePermission).where(
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def assign_permission(self, role_id: str, permission_id: str) -> RolePermission:
        existing = self._grant(role_id, permission_id)
        if existing is not None:
            return existing
        self._insert_unless_present(RolePermission, role_id=role_id, permission_id=permission_id)
        return self._grant(role_id, permission_id)

    def permission_ids_for_role(self, role_id: str) -> list[str]:
        """Permission ids granted to a role, in grant order."""
        stmt = (
            select(RolePermission.permission_id)
            .where(RolePermission.role_id == role_id)
            .order_by(RolePermission.id)
        )
        return list(self.session.execute(stmt).scalars())

    def permissions_for_roles(self, role_ids: Iterable[str]) -> list[Permission]:
        """Union of the permissions granted to the roles, one entry per permission."""
        role_ids = list(role_ids)
        if not role_ids:
            return []
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id.in_(role_ids))
            .order_by(RolePermission.id)
        )
        seen: dict[str, Permission] = {}
        for permission in self.session.execute(stmt).scalars():
            seen.setdefault(permission.id, permission)
        return list(seen.values())

    # ─────────────────────────────────────────────────────────────────────────
    # Account -> Role edges
    # ─────────────────────────────────────────────────────────────────────────
    def _assignment(self, account_id: str, role_id: str) -> Optional[RoleAssignment]:
        stmt = select(RoleAssignment).where(
            RoleAssignment.account_id == account_id,
            RoleAssignment.role_id == role_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def assign_role(self, account_id: str, role_id: str) -> RoleAssignment:
        existing = self._assignment(account_id, role_id)
        if existing is not None:
            return existing
        if self._insert_unless_present(RoleAssignment, account_id=account_id, role_id=role_id):
            logger.info("Role %s assigned to account %s", role_id, account_id)
        return self._assignment(account_id, role_id)

    def remove_role(self, account_id: str, role_id: str) -> bool:
        """Delete the edge if present; returns whether anything was removed."""
        existing = self._assignment(account_id, role_id)
        if existing is None:
            return False
        self.session.delete(existing)
        self.session.flush()
        logger.info("Role %s removed from account %s", role_id, account_id)
        return True

    def count_assignments(self, account_id: str, role_id: str) -> int:
        stmt = select(RoleAssignment.id).where(
            RoleAssignment.account_id == account_id,
            RoleAssignment.role_id == role_id,
        )
        return len(self.session.execute(stmt).scalars().all())

    def roles_for_account(self, account_id: str) -> list[Role]:
        """Roles assigned to the account; edges pointing at deleted roles are skipped."""
        stmt = (
            select(Role)
            .join(RoleAssignment, RoleAssignment.role_id == Role.id)
            .where(RoleAssignment.account_id == account_id)
            .order_by(RoleAssignment.id)
        )
        return list(self.session.execute(stmt).scalars())

    def roles_by_account(self, account_ids: Iterable[str]) -> dict[str, list[Role]]:
        """Bulk variant of ``roles_for_account`` keyed by account id."""
        account_ids = list(account_ids)
        result: dict[str, list[Role]] = {account_id: [] for account_id in account_ids}
        if not account_ids:
            return result
        stmt = (
            select(RoleAssignment.account_id, Role)
            .join(Role, RoleAssignment.role_id == Role.id)
            .where(RoleAssignment.account_id.in_(account_ids))
            .order_by(RoleAssignment.id)
        )
        for account_id, role in self.session.execute(stmt):
            result[account_id].append(role)
        return result
