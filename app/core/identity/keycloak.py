"""Keycloak implementation of the identity provider boundary."""
from __future__ import annotations
import logging
import time
from typing import Optional

from .client import KeycloakClient
from .exceptions import IdentityAPIError, InvalidCredentialsError
from .provider import ExternalIdentity, IdentityProvider, IdentitySession, split_display_name
from .sessions import SessionService
from .users import UserService

logger = logging.getLogger(__name__)

RESET_NONCE_ATTRIBUTE = "passwordResetNonce"


def _identity_from_user(user: dict) -> ExternalIdentity:
    display_name = " ".join(part for part in (user.get("firstName"), user.get("lastName")) if part)
    return ExternalIdentity(
        id=user["id"],
        email=(user.get("email") or user.get("username") or "").lower(),
        display_name=display_name,
    )


class KeycloakIdentityProvider(IdentityProvider):
    """Identity provider backed by one Keycloak realm.

    End-user sign-in uses the direct access grant of ``client_id``; admin
    operations run under the service account of the same realm.
    """

    def __init__(
        self,
        client: KeycloakClient,
        realm: str,
        client_id: str,
        client_secret: str = "",
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client = client
        self.realm = realm
        self.client_id = client_id
        self.client_secret = client_secret
        self.users = UserService(client)
        self.sessions = SessionService(client)

    @classmethod
    def from_config(cls, cfg) -> "KeycloakIdentityProvider":
        client = KeycloakClient(cfg.keycloak_url)
        client.configure_service_account(
            cfg.keycloak_realm,
            cfg.keycloak_service_client_id,
            cfg.service_client_secret_resolved,
        )
        return cls(
            client,
            realm=cfg.keycloak_realm,
            client_id=cfg.oidc_client_id,
            client_secret=cfg.oidc_client_secret,
            reset_secret=cfg.secret_key,
            site_url=cfg.site_url,
            reset_max_age=cfg.password_reset_max_age,
        )

    def _client_credentials(self) -> dict:
        data = {"client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret
        return data

    def _session_from_token_response(self, payload: dict) -> IdentitySession:
        access_token = payload["access_token"]
        resp = self.client.userinfo(self.realm, access_token)
        if resp.status_code != 200:
            raise IdentityAPIError(resp.status_code, resp.text, "userinfo")
        info = resp.json()
        identity = ExternalIdentity(
            id=info["sub"],
            email=(info.get("email") or info.get("preferred_username") or "").lower(),
            display_name=info.get("name", ""),
        )
        return IdentitySession(
            identity=identity,
            access_token=access_token,
            refresh_token=payload.get("refresh_token", ""),
            expires_at=time.time() + int(payload.get("expires_in", 300)),
        )

    def _grant(self, data: dict) -> IdentitySession:
        data.update(self._client_credentials())
        resp = self.client.token_request(self.realm, data)
        if resp.status_code in (400, 401):
            raise InvalidCredentialsError("Invalid email or password")
        if resp.status_code != 200:
            raise IdentityAPIError(resp.status_code, resp.text, self.client.token_url(self.realm))
        return self._session_from_token_response(resp.json())

    # ─────────────────────────────────────────────────────────────────────────
    # IdentityProvider primitives
    # ─────────────────────────────────────────────────────────────────────────
    def create_identity(self, email: str, password: str, display_name: str) -> ExternalIdentity:
        first, last = split_display_name(display_name)
        user_id = self.users.create_user(self.realm, email, password, first, last)
        return ExternalIdentity(id=user_id, email=email.lower(), display_name=display_name)

    def authenticate(self, email: str, password: str) -> IdentitySession:
        return self._grant({
            "grant_type": "password",
            "username": email,
            "password": password,
            "scope": "openid email profile",
        })

    def refresh_session(self, refresh_token: str) -> IdentitySession:
        return self._grant({"grant_type": "refresh_token", "refresh_token": refresh_token})

    def sign_out(self, refresh_token: str) -> None:
        data = self._client_credentials()
        data["refresh_token"] = refresh_token
        resp = self.client.logout(self.realm, data)
        if resp.status_code not in (200, 204):
            logger.warning("Keycloak logout returned %s", resp.status_code)

    def find_identity_by_email(self, email: str) -> Optional[ExternalIdentity]:
        user = self.users.get_user_by_email(self.realm, email)
        return _identity_from_user(user) if user else None

    def get_identity(self, identity_id: str) -> ExternalIdentity:
        return _identity_from_user(self.users.get_user(self.realm, identity_id))

    def set_password(self, identity_id: str, password: str) -> None:
        self.users.set_password(self.realm, identity_id, password)

    def revoke_all_sessions(self, identity_id: str) -> int:
        return self.sessions.revoke_user_sessions(self.realm, identity_id)

    def _store_reset_nonce(self, identity_id: str, nonce: Optional[str]) -> None:
        self.users.set_attribute(self.realm, identity_id, RESET_NONCE_ATTRIBUTE, nonce)

    def _load_reset_nonce(self, identity_id: str) -> Optional[str]:
        return self.users.get_attribute(self.realm, identity_id, RESET_NONCE_ATTRIBUTE)
