"""Account store: application user records and their lifecycle status."""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Account, AccountStatus, utcnow

logger = logging.getLogger(__name__)


class AccountStore:
    """Reads and writes ``Account`` rows inside a caller-owned session."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, account_id: str) -> Optional[Account]:
        return self.session.get(Account, account_id)

    def get_by_external_ref(self, external_identity_ref: str) -> Optional[Account]:
        """Return the account linked to an external identity, if any."""
        if not external_identity_ref:
            return None
        stmt = select(Account).where(Account.external_identity_ref == external_identity_ref)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_email(self, email: str) -> Optional[Account]:
        if not email:
            return None
        stmt = select(Account).where(Account.email == email.strip().lower())
        return self.session.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[Account]:
        stmt = select(Account).order_by(Account.created_at, Account.email)
        return list(self.session.execute(stmt).scalars())

    def create(
        self,
        external_identity_ref: str,
        email: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        status: AccountStatus = AccountStatus.ACTIVE,
    ) -> Account:
        """Insert a new account. Uniqueness is enforced by the database."""
        account = Account(
            external_identity_ref=external_identity_ref,
            email=email.strip().lower(),
            first_name=first_name,
            last_name=last_name,
            phone=phone or None,
            status=AccountStatus(status).value,
        )
        self.session.add(account)
        self.session.flush()
        logger.info("Account created (id=%s, status=%s)", account.id, account.status)
        return account

    def set_status(self, account: Account, status: AccountStatus) -> Account:
        previous = account.status
        account.status = AccountStatus(status).value
        self.session.flush()
        logger.info("Account %s status %s -> %s", account.id, previous, account.status)
        return account

    def touch_last_login(self, external_identity_ref: str, when: Optional[datetime] = None) -> Optional[Account]:
        """Record a successful sign-in for the account linked to the identity."""
        account = self.get_by_external_ref(external_identity_ref)
        if account is None:
            return None
        account.last_login_at = when or utcnow()
        self.session.flush()
        return account

    def is_blocked_by_email(self, email: str) -> bool:
        account = self.get_by_email(email)
        return account is not None and account.status == AccountStatus.BLOCKED.value


def serialize_account(account: Account, roles: Optional[list] = None) -> dict:
    """JSON-friendly view of an account."""
    payload = {
        "id": account.id,
        "email": account.email,
        "firstName": account.first_name,
        "lastName": account.last_name,
        "phone": account.phone,
        "avatarRef": account.avatar_ref,
        "status": account.status,
        "lastLoginAt": account.last_login_at.isoformat() if account.last_login_at else None,
    }
    if roles is not None:
        payload["roles"] = [{"id": role.id, "name": role.name} for role in roles]
    return payload
