"""Keycloak user operations used by the identity provider adapter."""
from __future__ import annotations
import logging
from typing import Optional

from .client import KeycloakClient
from .exceptions import IdentityAlreadyExistsError, IdentityAPIError, IdentityNotFoundError

logger = logging.getLogger(__name__)


class UserService:
    """Service for managing Keycloak users."""

    def __init__(self, client: KeycloakClient):
        """Initialize user service.

        Args:
            client: Authenticated Keycloak client
        """
        self.client = client

    def get_user(self, realm: str, user_id: str) -> dict:
        try:
            return self.client.get(f"/admin/realms/{realm}/users/{user_id}").json()
        except IdentityAPIError as exc:
            if exc.status_code == 404:
                raise IdentityNotFoundError(user_id) from exc
            raise

    def get_user_by_email(self, realm: str, email: str) -> Optional[dict]:
        """Return the user representation that exactly matches the email.

        Args:
            realm: Realm name
            email: Email to search for (case-insensitive)

        Returns:
            User representation or None if not found
        """
        resp = self.client.get(f"/admin/realms/{realm}/users", params={"email": email, "exact": "true"})
        for user in resp.json() or []:
            if (user.get("email") or "").lower() == email.lower():
                return user
        return None

    def create_user(self, realm: str, email: str, password: str, first: str, last: str) -> str:
        """Create an enabled user whose username is the email, with a permanent password.

        Returns:
            New user id

        Raises:
            IdentityAlreadyExistsError: Username or email already taken
        """
        payload = {
            "username": email,
            "email": email,
            "firstName": first,
            "lastName": last,
            "enabled": True,
            "emailVerified": True,
            "credentials": [{"type": "password", "value": password, "temporary": False}],
        }
        try:
            resp = self.client.post(f"/admin/realms/{realm}/users", json=payload)
        except IdentityAPIError as exc:
            if exc.status_code == 409:
                raise IdentityAlreadyExistsError(email) from exc
            raise

        location = resp.headers.get("Location", "")
        user_id = location.rstrip("/").rsplit("/", 1)[-1] if location else ""
        if not user_id:
            created = self.get_user_by_email(realm, email)
            if not created:
                raise IdentityNotFoundError(email)
            user_id = created["id"]
        logger.info("Identity created in realm %s (id=%s)", realm, user_id)
        return user_id

    def set_password(self, realm: str, user_id: str, password: str) -> None:
        self.client.put(
            f"/admin/realms/{realm}/users/{user_id}/reset-password",
            json={"type": "password", "temporary": False, "value": password},
        )

    def get_attribute(self, realm: str, user_id: str, name: str) -> Optional[str]:
        user_rep = self.get_user(realm, user_id)
        values = (user_rep.get("attributes") or {}).get(name) or []
        return values[0] if values else None

    def set_attribute(self, realm: str, user_id: str, name: str, value: Optional[str]) -> None:
        """Set (or remove with ``None``) a single-valued user attribute."""
        url = f"/admin/realms/{realm}/users/{user_id}"
        user_rep = self.get_user(realm, user_id)
        attributes = dict(user_rep.get("attributes") or {})
        if value is None:
            attributes.pop(name, None)
        else:
            attributes[name] = [value]
        user_rep["attributes"] = attributes
        self.client.put(url, json=user_rep)
