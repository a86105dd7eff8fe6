"""Identity provider boundary.

``IdentityProvider`` is the contract the rest of the application consumes:
create a credentialed identity, sign in, refresh/sign out sessions, reset and
change passwords, revoke sessions. Concrete adapters implement the primitive
methods; the template methods here run the registered ``AuthHooks`` at the
right points of each flow:

    sign_in                  before_sign_in(email) -> authenticate -> after_sign_in(identity)
    request_password_reset   mint one-time link -> send_reset_password(identity, url)
    complete_password_reset  consume link -> set password -> on_password_reset(identity)

A hook vetoes a flow by raising.
"""
from __future__ import annotations
import hmac
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import urlencode

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .exceptions import InvalidCredentialsError, InvalidResetTokenError

logger = logging.getLogger(__name__)

RESET_TOKEN_SALT = "password-reset"


@dataclass(frozen=True)
class ExternalIdentity:
    """Stable handle of a user inside the identity provider."""

    id: str
    email: str = ""
    display_name: str = ""


@dataclass
class IdentitySession:
    """Tokens issued by a successful sign-in or refresh."""

    identity: ExternalIdentity
    access_token: str
    refresh_token: str = ""
    expires_at: float = 0.0

    def expires_within(self, seconds: int) -> bool:
        return bool(self.expires_at) and time.time() >= self.expires_at - seconds

    def to_dict(self) -> dict:
        return {
            "identity": asdict(self.identity),
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IdentitySession":
        return cls(
            identity=ExternalIdentity(**data["identity"]),
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            expires_at=float(data.get("expires_at") or 0.0),
        )


class AuthHooks:
    """Callbacks invoked by the provider during authentication flows.

    The defaults allow everything and send nothing.
    """

    def before_sign_in(self, email: str) -> None:
        pass

    def after_sign_in(self, identity: ExternalIdentity) -> None:
        pass

    def send_reset_password(self, identity: ExternalIdentity, url: str) -> None:
        logger.warning("No reset-password sender registered; link for %s dropped", identity.id)

    def on_password_reset(self, identity: ExternalIdentity) -> None:
        pass


def split_display_name(display_name: str) -> tuple[str, str]:
    first, _, last = (display_name or "").strip().partition(" ")
    return first, last.strip()


class IdentityProvider(ABC):
    """Credential and session engine consumed by the application."""

    def __init__(
        self,
        reset_secret: str,
        site_url: str,
        reset_max_age: int = 3600,
        hooks: Optional[AuthHooks] = None,
    ):
        self.site_url = site_url.rstrip("/")
        self.reset_max_age = reset_max_age
        self.hooks = hooks or AuthHooks()
        self._reset_serializer = URLSafeTimedSerializer(reset_secret, salt=RESET_TOKEN_SALT)

    def register_hooks(self, hooks: AuthHooks) -> None:
        self.hooks = hooks

    # ─────────────────────────────────────────────────────────────────────────
    # Primitives implemented by adapters
    # ─────────────────────────────────────────────────────────────────────────
    @abstractmethod
    def create_identity(self, email: str, password: str, display_name: str) -> ExternalIdentity:
        """Create a credentialed identity; raises ``IdentityAlreadyExistsError``."""

    @abstractmethod
    def authenticate(self, email: str, password: str) -> IdentitySession:
        """Check a password; raises ``InvalidCredentialsError``. No hooks run."""

    @abstractmethod
    def refresh_session(self, refresh_token: str) -> IdentitySession:
        """Exchange a refresh token; raises ``InvalidCredentialsError`` once revoked."""

    @abstractmethod
    def sign_out(self, refresh_token: str) -> None:
        """End one session."""

    @abstractmethod
    def find_identity_by_email(self, email: str) -> Optional[ExternalIdentity]:
        """Look up an identity by email; ``None`` when unknown."""

    @abstractmethod
    def get_identity(self, identity_id: str) -> ExternalIdentity:
        """Fetch an identity; raises ``IdentityNotFoundError``."""

    @abstractmethod
    def set_password(self, identity_id: str, password: str) -> None:
        """Overwrite the password without checking the old one."""

    @abstractmethod
    def revoke_all_sessions(self, identity_id: str) -> int:
        """End every session of the identity and return how many were ended."""

    @abstractmethod
    def _store_reset_nonce(self, identity_id: str, nonce: Optional[str]) -> None:
        """Remember (or forget with ``None``) the live reset nonce."""

    @abstractmethod
    def _load_reset_nonce(self, identity_id: str) -> Optional[str]:
        """Return the live reset nonce, if any."""

    # ─────────────────────────────────────────────────────────────────────────
    # Flows
    # ─────────────────────────────────────────────────────────────────────────
    def sign_in(self, email: str, password: str) -> IdentitySession:
        """Password sign-in wrapped by the before/after hooks."""
        email = (email or "").strip().lower()
        self.hooks.before_sign_in(email)
        session = self.authenticate(email, password)
        self.hooks.after_sign_in(session.identity)
        return session

    def build_reset_url(self, token: str, redirect_path: str) -> str:
        path = redirect_path if redirect_path.startswith("/") else f"/{redirect_path}"
        return f"{self.site_url}{path}?{urlencode({'token': token})}"

    def request_password_reset(self, email: str, redirect_path: str) -> None:
        """Mint a one-time reset link and hand it to ``send_reset_password``.

        Unknown emails are ignored so callers cannot probe which accounts exist.
        """
        identity = self.find_identity_by_email((email or "").strip().lower())
        if identity is None:
            logger.info("Password reset requested for unknown email")
            return

        nonce = secrets.token_urlsafe(24)
        self._store_reset_nonce(identity.id, nonce)
        token = self._reset_serializer.dumps({"sub": identity.id, "nonce": nonce})
        try:
            self.hooks.send_reset_password(identity, self.build_reset_url(token, redirect_path))
        except Exception:
            self._store_reset_nonce(identity.id, None)
            raise

    def complete_password_reset(self, token: str, new_password: str) -> ExternalIdentity:
        """Consume a reset token, set the new password and run ``on_password_reset``.

        Raises:
            InvalidResetTokenError: Malformed, expired or already used token
        """
        try:
            data = self._reset_serializer.loads(token, max_age=self.reset_max_age)
        except SignatureExpired as exc:
            raise InvalidResetTokenError("Reset link has expired") from exc
        except BadSignature as exc:
            raise InvalidResetTokenError("Reset link is invalid") from exc

        identity_id = data.get("sub", "")
        stored = self._load_reset_nonce(identity_id) if identity_id else None
        if not stored or not hmac.compare_digest(stored, str(data.get("nonce", ""))):
            raise InvalidResetTokenError("Reset link was already used")

        self._store_reset_nonce(identity_id, None)
        self.set_password(identity_id, new_password)
        identity = self.get_identity(identity_id)
        logger.info("Password reset completed for identity %s", identity_id)
        self.hooks.on_password_reset(identity)
        return identity

    def change_password(self, identity: ExternalIdentity, current_password: str, new_password: str) -> None:
        """Set a new password after proving the current one.

        Raises:
            InvalidCredentialsError: Current password is wrong
        """
        probe = self.authenticate(identity.email, current_password)
        if probe.identity.id != identity.id:
            raise InvalidCredentialsError("Credentials belong to another identity")
        if probe.refresh_token:
            self.sign_out(probe.refresh_token)
        self.set_password(identity.id, new_password)
        logger.info("Password changed for identity %s", identity.id)
