"""
Bearer token validation and request identity helpers.

API clients may call the JSON endpoints with a Keycloak access token instead
of a browser session:

    Authorization: Bearer <access token>

Security:
- RSA-SHA256 signature verification via JWKS (RFC 7517)
- Expiration, not-before and issuer validation (RFC 7519)
- JWKS keys cached per application (1-hour refresh)
"""
from __future__ import annotations
import logging
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidIssuerError,
    InvalidSignatureError,
)
from flask import current_app, g, jsonify, request

from app.core.errors import ConflictError, DependencyError, NotAuthenticated, ValidationError
from app.core.gate import OperationRuntime
from app.core.identity.provider import ExternalIdentity
from app.api.helpers.session import current_session

logger = logging.getLogger(__name__)

JWKS_EXTENSION_KEY = "jwks_client"
FAILURE_STATUS = {
    error.code: error.http_status for error in (ValidationError, ConflictError, DependencyError)
}


class TokenValidationError(Exception):
    """Exception raised when JWT token validation fails."""
    pass


def get_runtime() -> OperationRuntime:
    return current_app.extensions["admin_starter"]


def get_jwks_client() -> PyJWKClient:
    """JWKS client for the configured realm, created once per application."""
    client = current_app.extensions.get(JWKS_EXTENSION_KEY)
    if client is None:
        cfg = current_app.config["APP_CONFIG"]
        jwks_url = f"{cfg.keycloak_server_url}/protocol/openid-connect/certs"
        logger.info("Initializing JWKS client for: %s", jwks_url)
        client = PyJWKClient(jwks_url, cache_keys=True, max_cached_keys=16, lifespan=3600)
        current_app.extensions[JWKS_EXTENSION_KEY] = client
    return client


def validate_jwt_token(token: str) -> Dict[str, Any]:
    """
    Validate a Keycloak access token.

    Returns:
        dict: Validated token claims

    Raises:
        TokenValidationError: If any validation fails
    """
    cfg = current_app.config["APP_CONFIG"]

    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=cfg.keycloak_issuer,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_nbf": True,
                "verify_iss": True,
                "verify_aud": False,
                "require": ["exp", "iat", "sub"],
            },
            leeway=5,
        )
    except ExpiredSignatureError:
        raise TokenValidationError("Token expired (exp claim)")
    except InvalidIssuerError as e:
        raise TokenValidationError(f"Invalid issuer: {e}")
    except InvalidSignatureError:
        raise TokenValidationError("Invalid signature (token tampered or wrong key)")
    except DecodeError as e:
        raise TokenValidationError(f"Token decode error (malformed JWT): {e}")
    except Exception as e:
        logger.error("JWT validation failed: %s", e)
        raise TokenValidationError(f"Token validation failed: {e}")


def bearer_token() -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def current_identity() -> Optional[ExternalIdentity]:
    """External identity of the caller: bearer token first, then the session.

    Raises:
        NotAuthenticated: A bearer token was sent but is not valid
    """
    if "identity" in g:
        return g.identity

    token = bearer_token()
    if token:
        try:
            claims = validate_jwt_token(token)
        except TokenValidationError as exc:
            logger.warning("Bearer token rejected: %s", exc)
            raise NotAuthenticated("Invalid bearer token")
        identity = ExternalIdentity(
            id=claims["sub"],
            email=(claims.get("email") or "").lower(),
            display_name=claims.get("name", ""),
        )
    else:
        auth = current_session()
        identity = auth.identity if auth else None

    g.identity = identity
    return identity


def require_identity(fn):
    """Reject the request with 401 unless a caller identity is present."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_identity() is None:
            raise NotAuthenticated()
        return fn(*args, **kwargs)
    return wrapper


def tagged_response(result: dict, success_status: int = 200):
    """JSON response for a ``{"success": ...}`` operation result."""
    if result.get("success"):
        return jsonify(result), success_status
    return jsonify(result), FAILURE_STATUS.get(result.get("code"), 400)
