"""Low-level HTTP client for Keycloak.

Two kinds of calls go through here: Admin REST API calls authenticated with a
service-account token (refreshed automatically), and unauthenticated OIDC
endpoint calls (token, userinfo, logout) made on behalf of end users.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import requests

from .exceptions import IdentityAPIError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5


class KeycloakClient:
    """HTTP client for Keycloak with service-account token management.

    Usage:
        client = KeycloakClient("http://keycloak:8080")
        client.authenticate_service_account("demo", "automation-cli", "secret")
        response = client.get("/admin/realms/demo/users")
    """

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._auth_params: Dict[str, Any] = {}

    def authenticate_service_account(self, auth_realm: str, client_id: str, client_secret: str) -> str:
        """Authenticate as service account and keep the credentials for refresh.

        Args:
            auth_realm: Realm where service account client exists
            client_id: Service account client ID
            client_secret: Service account client secret

        Returns:
            Access token
        """
        self.configure_service_account(auth_realm, client_id, client_secret)
        self._refresh_service_token()
        return self._token

    def configure_service_account(self, auth_realm: str, client_id: str, client_secret: str) -> None:
        """Store service-account credentials; the token is fetched on first admin call."""
        self._auth_params = {
            "auth_realm": auth_realm,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        self._token = None
        self._token_expires_at = None

    def _refresh_service_token(self) -> None:
        resp = self.token_request(
            self._auth_params["auth_realm"],
            {
                "grant_type": "client_credentials",
                "client_id": self._auth_params["client_id"],
                "client_secret": self._auth_params["client_secret"],
            },
        )
        if resp.status_code != 200:
            raise IdentityAPIError(resp.status_code, resp.text, self.token_url(self._auth_params["auth_realm"]))
        payload = resp.json()
        self._token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 60))
        self._token_expires_at = datetime.now() + timedelta(seconds=expires_in)

    def _ensure_authenticated(self) -> None:
        """Ensure we have a valid admin token, refreshing if necessary."""
        if not self._auth_params:
            raise IdentityAPIError(401, "Not authenticated - call authenticate_service_account first", "")
        if not self._token or not self._token_expires_at:
            self._refresh_service_token()
            return
        if datetime.now() >= self._token_expires_at - timedelta(seconds=10):
            self._refresh_service_token()

    def _headers(self, extra: Optional[Dict] = None) -> Dict[str, str]:
        headers = dict(extra or {})
        headers["Authorization"] = f"Bearer {self._token}"
        return headers

    # ─────────────────────────────────────────────────────────────────────────
    # Admin API (service-account authenticated)
    # ─────────────────────────────────────────────────────────────────────────
    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        self._ensure_authenticated()
        headers = self._headers(kwargs.pop("headers", None))
        resp = requests.get(f"{self.base_url}{path}", params=params, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs)
        self._handle_error(resp)
        return resp

    def post(self, path: str, json: Optional[Any] = None, data: Optional[Dict] = None, **kwargs) -> requests.Response:
        self._ensure_authenticated()
        headers = self._headers(kwargs.pop("headers", None))
        resp = requests.post(
            f"{self.base_url}{path}",
            json=json,
            data=data,
            headers=headers,
            timeout=REQUEST_TIMEOUT,
            **kwargs,
        )
        self._handle_error(resp)
        return resp

    def put(self, path: str, json: Optional[Any] = None, **kwargs) -> requests.Response:
        self._ensure_authenticated()
        headers = self._headers(kwargs.pop("headers", None))
        resp = requests.put(f"{self.base_url}{path}", json=json, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs)
        self._handle_error(resp)
        return resp

    def delete(self, path: str, **kwargs) -> requests.Response:
        self._ensure_authenticated()
        headers = self._headers(kwargs.pop("headers", None))
        resp = requests.delete(f"{self.base_url}{path}", headers=headers, timeout=REQUEST_TIMEOUT, **kwargs)
        self._handle_error(resp)
        return resp

    # ─────────────────────────────────────────────────────────────────────────
    # OIDC endpoints (end-user flows, never raise on HTTP status)
    # ─────────────────────────────────────────────────────────────────────────
    def token_url(self, realm: str) -> str:
        return f"{self.base_url}/realms/{realm}/protocol/openid-connect/token"

    def token_request(self, realm: str, data: Dict[str, str]) -> requests.Response:
        """POST to the token endpoint (password, refresh_token, client_credentials grants)."""
        return requests.post(self.token_url(realm), data=data, timeout=REQUEST_TIMEOUT)

    def userinfo(self, realm: str, access_token: str) -> requests.Response:
        url = f"{self.base_url}/realms/{realm}/protocol/openid-connect/userinfo"
        return requests.get(url, headers={"Authorization": f"Bearer {access_token}"}, timeout=REQUEST_TIMEOUT)

    def logout(self, realm: str, data: Dict[str, str]) -> requests.Response:
        url = f"{self.base_url}/realms/{realm}/protocol/openid-connect/logout"
        return requests.post(url, data=data, timeout=REQUEST_TIMEOUT)

    def _handle_error(self, resp: requests.Response) -> None:
        """Raise ``IdentityAPIError`` for any 4xx/5xx response."""
        if resp.status_code >= 400:
            logger.debug("Keycloak error %s on %s", resp.status_code, resp.url)
            raise IdentityAPIError(resp.status_code, resp.text, resp.url)
