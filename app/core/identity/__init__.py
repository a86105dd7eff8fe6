"""Identity provider boundary and its Keycloak adapter.

Architecture:
- provider.py: IdentityProvider contract, AuthHooks, one-time reset links
- keycloak.py: KeycloakIdentityProvider (direct grant + Admin API)
- client.py: HTTP client with service-account token refresh
- users.py / sessions.py: Admin API user and session operations
- exceptions.py: Typed exceptions for error handling
"""
from .client import KeycloakClient, REQUEST_TIMEOUT
from .exceptions import (
    IdentityProviderError,
    IdentityAPIError,
    IdentityAlreadyExistsError,
    IdentityNotFoundError,
    InvalidCredentialsError,
    InvalidResetTokenError,
)
from .provider import AuthHooks, ExternalIdentity, IdentityProvider, IdentitySession
from .keycloak import KeycloakIdentityProvider

__all__ = [
    "KeycloakClient",
    "REQUEST_TIMEOUT",
    "IdentityProviderError",
    "IdentityAPIError",
    "IdentityAlreadyExistsError",
    "IdentityNotFoundError",
    "InvalidCredentialsError",
    "InvalidResetTokenError",
    "AuthHooks",
    "ExternalIdentity",
    "IdentityProvider",
    "IdentitySession",
    "KeycloakIdentityProvider",
]
