"""Application error taxonomy.

Authentication and authorization failures (``NotAuthenticated``,
``AccountNotProvisioned``, ``Forbidden``, ``Blocked``) are raised and end the
request with 401/403. Business failures inside fallible operations
(``ValidationError``, ``ConflictError``, ``DependencyError``) are returned to
the caller as ``failure(...)`` values instead of being raised.
"""
from __future__ import annotations
from typing import Optional

BLOCKED_MESSAGE = "Your account has been blocked. Please contact an administrator."


class AppError(Exception):
    """Base exception for all application errors.

    Attributes:
        code: Stable machine-readable error code
        message: Human-readable message safe to show to the user
        http_status: HTTP status the API layer answers with
    """

    code = "error"
    http_status = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotAuthenticated(AppError):
    """No valid session or bearer token."""

    code = "not_authenticated"
    http_status = 401
    default_message = "Authentication required"


class AccountNotProvisioned(AppError):
    """Valid identity but no linked Account record."""

    code = "USER_RECORD_NOT_FOUND"
    http_status = 401
    default_message = "No user record is linked to this identity"


class Forbidden(AppError):
    """Authenticated account lacks the required permission."""

    code = "forbidden"
    http_status = 403

    def __init__(self, permission: str, message: Optional[str] = None):
        self.permission = permission
        super().__init__(message or f"Missing permission: {permission}")

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["permission"] = self.permission
        return payload


class Blocked(AppError):
    """Account status prevents sign-in or password recovery."""

    code = "blocked"
    http_status = 403
    default_message = BLOCKED_MESSAGE


class ValidationError(AppError):
    code = "validation_error"
    http_status = 400
    default_message = "Invalid input"


class ConflictError(AppError):
    code = "conflict"
    http_status = 409
    default_message = "Resource already exists"


class DependencyError(AppError):
    """An external collaborator (identity provider, email) failed."""

    code = "dependency_error"
    http_status = 502
    default_message = "An external service is unavailable"


def failure(error: AppError) -> dict:
    """Tagged failure value returned by fallible operations."""
    return {"success": False, "error": error.message, "code": error.code}
