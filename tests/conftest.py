"""Pytest shared fixtures: in-memory database, identity provider and mailer doubles."""
import os
import pathlib
import secrets
import sys
import time
from types import SimpleNamespace
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")

import pytest
import requests

from app.config.settings import AppConfig
from app.core.accounts import AccountStore
from app.core.database import Database
from app.core.email import Mailer
from app.core.gate import OperationRuntime
from app.core.identity.exceptions import (
    IdentityAlreadyExistsError,
    IdentityNotFoundError,
    InvalidCredentialsError,
)
from app.core.identity.provider import ExternalIdentity, IdentityProvider, IdentitySession
from app.core.lifecycle import AccountLifecycle
from app.core.models import AccountStatus
from app.core.rbac_store import RbacStore
from app.core.seed import seed_rbac
from app.flask_app import create_app

DEFAULT_PASSWORD = "Password123!"


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from reaching Keycloak or anything else.

    Tests that exercise the HTTP adapters patch ``requests`` themselves.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _refuse(method):
        def _call(url, *args, **kwargs):
            raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")
        return _call

    for method in ("get", "post", "put", "delete"):
        monkeypatch.setattr(requests, method, _refuse(method.upper()))


# ─────────────────────────────────────────────────────────────────────────────
# Test Doubles
# ─────────────────────────────────────────────────────────────────────────────
class InMemoryIdentityProvider(IdentityProvider):
    """Identity provider keeping identities, passwords and sessions in dicts."""

    def __init__(self, **kwargs):
        kwargs.setdefault("reset_secret", "test-reset-secret")
        kwargs.setdefault("site_url", "http://testserver")
        super().__init__(**kwargs)
        self.identities: dict[str, dict] = {}
        self.sessions: dict[str, list[str]] = {}
        self.nonces: dict[str, str] = {}
        self.authenticate_calls: list[str] = []
        self.create_error: Optional[Exception] = None
        self._counter = 0

    def _id_for(self, email: str) -> Optional[str]:
        email = (email or "").lower()
        for identity_id, record in self.identities.items():
            if record["email"] == email:
                return identity_id
        return None

    def _identity(self, identity_id: str) -> ExternalIdentity:
        record = self.identities[identity_id]
        return ExternalIdentity(id=identity_id, email=record["email"], display_name=record["display_name"])

    def create_identity(self, email, password, display_name):
        if self.create_error is not None:
            raise self.create_error
        if self._id_for(email) is not None:
            raise IdentityAlreadyExistsError(email)
        self._counter += 1
        identity_id = f"kc-{self._counter}"
        self.identities[identity_id] = {
            "email": email.lower(),
            "password": password,
            "display_name": display_name,
        }
        return self._identity(identity_id)

    def authenticate(self, email, password):
        self.authenticate_calls.append(email)
        identity_id = self._id_for(email)
        if identity_id is None or self.identities[identity_id]["password"] != password:
            raise InvalidCredentialsError("Invalid email or password")
        refresh_token = secrets.token_hex(8)
        self.sessions.setdefault(identity_id, []).append(refresh_token)
        return IdentitySession(
            identity=self._identity(identity_id),
            access_token=f"access-{refresh_token}",
            refresh_token=refresh_token,
            expires_at=time.time() + 300,
        )

    def refresh_session(self, refresh_token):
        for identity_id, tokens in self.sessions.items():
            if refresh_token in tokens:
                return IdentitySession(
                    identity=self._identity(identity_id),
                    access_token="access-refreshed",
                    refresh_token=refresh_token,
                    expires_at=time.time() + 300,
                )
        raise InvalidCredentialsError("Session is not active")

    def sign_out(self, refresh_token):
        for tokens in self.sessions.values():
            if refresh_token in tokens:
                tokens.remove(refresh_token)

    def find_identity_by_email(self, email):
        identity_id = self._id_for(email)
        return self._identity(identity_id) if identity_id else None

    def get_identity(self, identity_id):
        if identity_id not in self.identities:
            raise IdentityNotFoundError(identity_id)
        return self._identity(identity_id)

    def set_password(self, identity_id, password):
        self.identities[identity_id]["password"] = password

    def revoke_all_sessions(self, identity_id):
        revoked = len(self.sessions.get(identity_id, []))
        self.sessions[identity_id] = []
        return revoked

    def live_sessions(self, identity_id) -> int:
        return len(self.sessions.get(identity_id, []))

    def _store_reset_nonce(self, identity_id, nonce):
        if nonce is None:
            self.nonces.pop(identity_id, None)
        else:
            self.nonces[identity_id] = nonce

    def _load_reset_nonce(self, identity_id):
        return self.nonces.get(identity_id)


class RecordingMailer(Mailer):
    """Mailer that keeps every message instead of sending it."""

    def __init__(self):
        super().__init__("noreply@example.com")
        self.sent: list[SimpleNamespace] = []
        self.error: Optional[Exception] = None

    def send_templated_email(self, to, subject, html_body):
        if self.error is not None:
            raise self.error
        self.sent.append(SimpleNamespace(to=to, subject=subject, html=html_body))


def extract_token(reset_url: str) -> str:
    return reset_url.split("token=", 1)[1].split('"', 1)[0].split("&", 1)[0]


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app_config():
    return AppConfig(
        demo_mode=True,
        secret_key="test-secret-key",
        session_cookie_secure=False,
        session_type="cookie",
        database_url="sqlite://",
        keycloak_url="http://keycloak.test",
        keycloak_realm="demo",
        keycloak_issuer="http://keycloak.test/realms/demo",
        site_url="http://testserver",
    )


@pytest.fixture()
def db():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture()
def identity_provider():
    return InMemoryIdentityProvider()


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
def lifecycle(db, mailer, identity_provider):
    hooks = AccountLifecycle(db, mailer, identity_provider.revoke_all_sessions)
    identity_provider.register_hooks(hooks)
    return hooks


@pytest.fixture()
def runtime(db, identity_provider, mailer, lifecycle):
    return OperationRuntime(db=db, identity_provider=identity_provider, mailer=mailer)


@pytest.fixture()
def roles(db):
    """Built-in roles, keyed by name, as ids."""
    with db.transaction() as session:
        seeded = seed_rbac(session)
        return {name: role.id for name, role in seeded.items()}


@pytest.fixture()
def make_account(db, identity_provider):
    """Create an identity plus its account, optionally with roles (by id)."""

    def _make(
        email: str,
        role_ids=(),
        status: AccountStatus = AccountStatus.ACTIVE,
        password: str = DEFAULT_PASSWORD,
        first_name: str = "Test",
        last_name: str = "User",
    ) -> SimpleNamespace:
        identity = identity_provider.create_identity(email, password, f"{first_name} {last_name}")
        with db.transaction() as session:
            account = AccountStore(session).create(
                external_identity_ref=identity.id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                status=status,
            )
            for role_id in role_ids:
                RbacStore(session).assign_role(account.id, role_id)
            account_id = account.id
        return SimpleNamespace(identity=identity, account_id=account_id, email=email.lower(), password=password)

    return _make


@pytest.fixture()
def admin(make_account, roles):
    return make_account("admin@example.com", role_ids=[roles["administrator"]], first_name="Ada", last_name="Admin")


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app(app_config, runtime):
    flask_app = create_app(cfg=app_config, runtime=runtime)
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


def get_csrf_token(client) -> str:
    """Get CSRF token for the client's session."""
    return client.get("/auth/csrf").get_json()["csrfToken"]


def authenticate_as(client, identity: ExternalIdentity, expires_in: int = 300, refresh_token: str = "stub-refresh"):
    """Put an identity session into the test client's cookie session."""
    identity_session = IdentitySession(
        identity=identity,
        access_token="stub-access",
        refresh_token=refresh_token,
        expires_at=time.time() + expires_in,
    )
    with client.session_transaction() as session:
        session["identity_session"] = identity_session.to_dict()


def send_json(client, method: str, url: str, payload=None, **kwargs):
    """State-changing request with the CSRF header attached."""
    headers = {"X-CSRF-Token": get_csrf_token(client)}
    headers.update(kwargs.pop("headers", {}))
    return client.open(url, method=method, json=payload, headers=headers, **kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires running stack)"
    )
