"""SQLAlchemy models for accounts, roles, permissions and their edges.

Tables:
    accounts          application users linked 1:1 to an external identity
    roles             named permission bundles (one may be a superuser role)
    permissions       atomic capabilities keyed "<resource>.<action>"
    role_assignments  account -> role edges
    role_permissions  role -> permission edges

Edges reference their endpoints by id without foreign keys: deleting a role
leaves its edges behind and readers skip them.
"""
from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountStatus(str, PyEnum):
    """Account lifecycle states."""
    INVITATION_SENT = "invitation_sent"
    ACTIVE = "active"
    BLOCKED = "blocked"

    @classmethod
    def values(cls) -> list[str]:
        return [status.value for status in cls]


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_new_id)
    external_identity_ref = Column(String(255), nullable=False, unique=True)
    email = Column(String(254), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(32), nullable=True)
    avatar_ref = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default=AccountStatus.ACTIVE.value)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_accounts_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Account {self.email} status={self.status}>"


class Role(Base):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_superuser = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class Permission(Base):
    __tablename__ = "permissions"

    id = Column(String(36), primary_key=True, default=_new_id)
    key = Column(String(150), nullable=False, unique=True)
    resource = Column(String(100), nullable=False)
    action = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_permissions_resource", "resource"),
    )

    def __repr__(self) -> str:
        return f"<Permission {self.key}>"


class RoleAssignment(Base):
    __tablename__ = "role_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(36), nullable=False)
    role_id = Column(String(36), nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "role_id", name="uq_role_assignment"),
        Index("ix_role_assignments_account", "account_id"),
        Index("ix_role_assignments_role", "role_id"),
    )


class RolePermission(Base):
    __tablename__ = "role_permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(String(36), nullable=False)
    permission_id = Column(String(36), nullable=False)

    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
        Index("ix_role_permissions_role", "role_id"),
        Index("ix_role_permissions_permission", "permission_id"),
    )
