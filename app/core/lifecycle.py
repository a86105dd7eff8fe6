"""Account lifecycle guards wired into the identity provider.

    invitation_sent --(password reset completed)--> active
    active <--(administrative status update)--> blocked

Guards:
    before_sign_in       blocked accounts are refused before the password is checked
    after_sign_in        last_login_at is recorded outside the sign-in path
    send_reset_password  blocked accounts get nothing; invited accounts get the
                         invitation email instead of the reset email
    on_password_reset    every session is revoked; invited accounts become active
"""
from __future__ import annotations
import logging
from concurrent.futures import Executor
from typing import Callable, Optional

from .accounts import AccountStore
from .database import Database
from .email import Mailer
from .errors import Blocked
from .identity.provider import AuthHooks, ExternalIdentity
from .models import AccountStatus

logger = logging.getLogger(__name__)


class AccountLifecycle(AuthHooks):
    """Identity provider hooks backed by the account store.

    Args:
        db: Database holding the accounts
        mailer: Delivery backend for reset and invitation emails
        revoke_sessions: Function ending every session of an external identity
        executor: Runs the last-login update off the sign-in path; ``None`` runs it inline
    """

    def __init__(
        self,
        db: Database,
        mailer: Mailer,
        revoke_sessions: Callable[[str], int],
        executor: Optional[Executor] = None,
    ):
        self.db = db
        self.mailer = mailer
        self.revoke_sessions = revoke_sessions
        self.executor = executor

    def before_sign_in(self, email: str) -> None:
        with self.db.read_session() as session:
            account = AccountStore(session).get_by_email(email)
            if account is not None and account.status == AccountStatus.BLOCKED.value:
                logger.warning("Sign-in refused for blocked account %s", account.id)
                raise Blocked()

    def after_sign_in(self, identity: ExternalIdentity) -> None:
        if self.executor is None:
            self._record_login(identity.id)
        else:
            self.executor.submit(self._record_login, identity.id)

    def _record_login(self, identity_id: str) -> None:
        try:
            with self.db.transaction() as session:
                if AccountStore(session).touch_last_login(identity_id) is None:
                    logger.info("Sign-in by identity %s without an account", identity_id)
        except Exception:
            logger.exception("Failed to record last login for identity %s", identity_id)

    def send_reset_password(self, identity: ExternalIdentity, url: str) -> None:
        with self.db.read_session() as session:
            account = AccountStore(session).get_by_external_ref(identity.id)
            status = account.status if account is not None else None

        if status == AccountStatus.BLOCKED.value:
            logger.warning("Password reset refused for blocked identity %s", identity.id)
            raise Blocked()

        if status == AccountStatus.INVITATION_SENT.value:
            self.mailer.send_invitation(identity.email, url)
            logger.info("Invitation email sent to identity %s", identity.id)
        else:
            self.mailer.send_reset_password(identity.email, url)
            logger.info("Reset email sent to identity %s", identity.id)

    def on_password_reset(self, identity: ExternalIdentity) -> None:
        """Revoke the identity's sessions and activate an invited account.

        The password is already changed when this runs, so activation happens
        even when session revocation fails; the revocation error still propagates.
        """
        try:
            revoked = self.revoke_sessions(identity.id)
            logger.info("Revoked %d session(s) after password reset for %s", revoked, identity.id)
        finally:
            self._activate_invited(identity.id)

    def _activate_invited(self, identity_id: str) -> None:
        with self.db.transaction() as session:
            store = AccountStore(session)
            account = store.get_by_external_ref(identity_id)
            if account is not None and account.status == AccountStatus.INVITATION_SENT.value:
                store.set_status(account, AccountStatus.ACTIVE)
                logger.info("Account %s activated by its first password reset", account.id)

    def is_user_blocked_by_email(self, email: str) -> bool:
        with self.db.read_session() as session:
            return AccountStore(session).is_blocked_by_email(email)
