"""Browser session helpers: identity tokens, CSRF token and stale-session marker."""
from __future__ import annotations
import secrets
from typing import Optional

import requests
from flask import current_app, session

from app.core.identity.exceptions import IdentityProviderError, InvalidCredentialsError
from app.core.identity.provider import IdentityProvider, IdentitySession

SESSION_KEY = "identity_session"
CSRF_SESSION_KEY = "_csrf_token"
MISMATCH_SINCE_KEY = "rbac_mismatch_since"


def current_session() -> Optional[IdentitySession]:
    data = session.get(SESSION_KEY)
    if not data:
        return None
    try:
        return IdentitySession.from_dict(data)
    except (KeyError, TypeError):
        current_app.logger.warning("Discarding malformed identity session")
        clear_session_tokens()
        return None


def is_authenticated() -> bool:
    return current_session() is not None


def store_session(identity_session: IdentitySession) -> None:
    session[SESSION_KEY] = identity_session.to_dict()
    session.pop(MISMATCH_SINCE_KEY, None)
    session.permanent = True


def clear_session_tokens() -> None:
    """Remove identity tokens and markers; the CSRF token survives."""
    session.pop(SESSION_KEY, None)
    session.pop(MISMATCH_SINCE_KEY, None)


def csrf_token() -> str:
    """Generate or retrieve CSRF token for current session."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def refresh_session_token(provider: IdentityProvider, leeway: int) -> Optional[bool]:
    """Refresh the session tokens if they expire within ``leeway`` seconds.

    Returns:
        None if no session or not expiring
        True if refresh successful
        False if the session was dropped
    """
    auth = current_session()
    if auth is None or not auth.expires_within(leeway):
        return None

    if not auth.refresh_token:
        current_app.logger.warning("Session access token expired without refresh token; clearing session.")
        clear_session_tokens()
        return False

    try:
        refreshed = provider.refresh_session(auth.refresh_token)
    except InvalidCredentialsError:
        current_app.logger.info("Refresh token rejected; clearing session")
        clear_session_tokens()
        return False
    except (IdentityProviderError, requests.RequestException) as exc:
        # Keep the session; the next request retries.
        current_app.logger.warning("Token refresh failed: %s", exc)
        return None

    store_session(refreshed)
    return True
