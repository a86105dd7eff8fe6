"""Assemble the operation runtime from configuration."""
from __future__ import annotations
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional

from .database import Database
from .email import build_mailer
from .gate import OperationRuntime
from .identity.keycloak import KeycloakIdentityProvider
from .lifecycle import AccountLifecycle

logger = logging.getLogger(__name__)


def build_runtime(cfg, executor: Optional[Executor] = None, create_tables: bool = True) -> OperationRuntime:
    """Database, Keycloak adapter, mailer and lifecycle hooks wired together."""
    db = Database(cfg.database_url, echo=cfg.database_echo)
    if create_tables:
        db.create_all()

    provider = KeycloakIdentityProvider.from_config(cfg)
    mailer = build_mailer(cfg)
    if executor is None:
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="lifecycle")
    provider.register_hooks(AccountLifecycle(db, mailer, provider.revoke_all_sessions, executor=executor))

    logger.info("Runtime ready (realm=%s, email=%s)", cfg.keycloak_realm, "smtp" if cfg.email_enabled else "console")
    return OperationRuntime(
        db=db,
        identity_provider=provider,
        mailer=mailer,
        superuser_role_name=cfg.superuser_role_name,
        password_reset_path=cfg.password_reset_path,
    )
