"""Authorization gate for application operations.

Every sensitive operation is declared with one of the decorators below and
called as ``operation(runtime, identity, **args)``. The gate resolves the
caller's RBAC snapshot, enforces authentication and the optional permission,
then runs ``body(ctx, args, snapshot)`` and returns its result unchanged.

    @secured_query(permission="rbac.manage")
    def list_roles(ctx, args, snapshot):
        return [...]

Shapes:
    secured_query     read-only session, always rolled back
    secured_mutation  one transaction, committed when the body returns
    secured_action    no session of its own; the snapshot comes from a
                      synchronous sub-call ``ctx.run_query(authorize, ...)``
                      and the body opens its own short transactions
    public_query      read-only session, no authentication
"""
from __future__ import annotations
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from .accounts import AccountStore
from .database import Database
from .email import Mailer
from .identity.provider import ExternalIdentity, IdentityProvider
from .rbac import SUPERUSER_ROLE_NAME, RbacSnapshot, authorize
from .rbac_store import RbacStore

logger = logging.getLogger(__name__)


@dataclass
class OperationRuntime:
    """Everything an operation may touch, passed explicitly on every call."""

    db: Database
    identity_provider: IdentityProvider
    mailer: Mailer
    superuser_role_name: str = SUPERUSER_ROLE_NAME
    password_reset_path: str = "/auth/reset-password/confirm"


class OperationKind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"
    ACTION = "action"


class QueryContext:
    """Context of a query: a read-only session plus the store helpers."""

    def __init__(self, runtime: OperationRuntime, identity: Optional[ExternalIdentity], session: Session):
        self.runtime = runtime
        self.identity = identity
        self.session = session
        self.accounts = AccountStore(session)
        self.rbac = RbacStore(session)


class MutationContext(QueryContext):
    """Context of a mutation: the session belongs to a single transaction."""


class ActionContext:
    """Context of an action: external calls plus explicit sub-transactions."""

    def __init__(self, runtime: OperationRuntime, identity: Optional[ExternalIdentity]):
        self.runtime = runtime
        self.identity = identity

    @property
    def identity_provider(self) -> IdentityProvider:
        return self.runtime.identity_provider

    @property
    def mailer(self) -> Mailer:
        return self.runtime.mailer

    def run_query(self, fn: Callable[..., Any], **kwargs) -> Any:
        """Call ``fn(session, **kwargs)`` in a read-only session."""
        with self.runtime.db.read_session() as session:
            return fn(session, **kwargs)

    def run_mutation(self, fn: Callable[..., Any], **kwargs) -> Any:
        """Call ``fn(session, **kwargs)`` in its own transaction."""
        with self.runtime.db.transaction() as session:
            return fn(session, **kwargs)


Body = Callable[[Any, dict, Optional[RbacSnapshot]], Any]
Authorizer = Callable[..., RbacSnapshot]


class SecuredOperation:
    """Callable operation guarded by the authorization gate."""

    def __init__(
        self,
        body: Body,
        kind: OperationKind,
        permission: Optional[str] = None,
        authenticated: bool = True,
        authorizer: Authorizer = authorize,
    ):
        functools.update_wrapper(self, body)
        self.body = body
        self.name = body.__name__
        self.kind = kind
        self.permission = permission
        self.authenticated = authenticated
        self.authorizer = authorizer

    def __repr__(self) -> str:
        return f"<SecuredOperation {self.name} kind={self.kind.value} permission={self.permission}>"

    def _authorize(self, session: Session, identity: Optional[ExternalIdentity], superuser_role_name: str):
        if not self.authenticated:
            return None
        return self.authorizer(
            session,
            identity,
            permission=self.permission,
            superuser_role_name=superuser_role_name,
        )

    def __call__(self, runtime: OperationRuntime, identity: Optional[ExternalIdentity], **args) -> Any:
        if self.kind is OperationKind.ACTION:
            return self._run_action(runtime, identity, args)

        open_session = runtime.db.transaction if self.kind is OperationKind.MUTATION else runtime.db.read_session
        context_cls = MutationContext if self.kind is OperationKind.MUTATION else QueryContext
        with open_session() as session:
            snapshot = self._authorize(session, identity, runtime.superuser_role_name)
            return self.body(context_cls(runtime, identity, session), args, snapshot)

    def _run_action(self, runtime: OperationRuntime, identity: Optional[ExternalIdentity], args: dict) -> Any:
        ctx = ActionContext(runtime, identity)
        snapshot = ctx.run_query(
            self._authorize,
            identity=identity,
            superuser_role_name=runtime.superuser_role_name,
        )
        return self.body(ctx, args, snapshot)


def secured_query(permission: Optional[str] = None) -> Callable[[Body], SecuredOperation]:
    def decorator(fn: Body) -> SecuredOperation:
        return SecuredOperation(fn, OperationKind.QUERY, permission)
    return decorator


def secured_mutation(permission: Optional[str] = None) -> Callable[[Body], SecuredOperation]:
    def decorator(fn: Body) -> SecuredOperation:
        return SecuredOperation(fn, OperationKind.MUTATION, permission)
    return decorator


def secured_action(
    permission: Optional[str] = None,
    authorizer: Authorizer = authorize,
) -> Callable[[Body], SecuredOperation]:
    """Gate a deferred operation.

    ``authorizer`` is the function the action calls through ``run_query`` to
    build its snapshot; it receives ``(session, identity, permission=...,
    superuser_role_name=...)``.
    """
    def decorator(fn: Body) -> SecuredOperation:
        return SecuredOperation(fn, OperationKind.ACTION, permission, authorizer=authorizer)
    return decorator


def public_query() -> Callable[[Body], SecuredOperation]:
    """Unauthenticated read; the body receives ``snapshot=None``."""
    def decorator(fn: Body) -> SecuredOperation:
        return SecuredOperation(fn, OperationKind.QUERY, authenticated=False)
    return decorator
