"""Input validation helpers for user data."""
from __future__ import annotations
import re
from typing import Optional

from .models import AccountStatus

PHONE_PATTERN = re.compile(r"^[0-9\s\-+()]+$")
NAME_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 8


def validate_email(email: str) -> str:
    """Validate email address.

    Args:
        email: Email address to validate

    Returns:
        Normalized email address

    Raises:
        ValueError: If email is invalid
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email or any(char.isspace() for char in email):
        raise ValueError("Invalid email format")

    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain:
        raise ValueError("Invalid email format")
    if domain.startswith(".") or domain.endswith("."):
        raise ValueError("Invalid email format")
    if len(email) > 254:
        raise ValueError("Email exceeds maximum length")

    return email


def validate_name(name: str, field: str) -> str:
    """Validate first/last name fields.

    Args:
        name: Name to validate
        field: Field name for error messages (e.g., "First name")

    Returns:
        Trimmed name

    Raises:
        ValueError: If name is invalid
    """
    name = (name or "").strip()
    if not name:
        raise ValueError(f"{field} is required")
    if len(name) > NAME_MAX_LENGTH:
        raise ValueError(f"{field} exceeds maximum length")

    # Prevent injection attacks
    if any(char in name for char in "<>\"`;&|$"):
        raise ValueError(f"{field} contains invalid characters")

    return name


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """Validate an optional phone number; blank means no phone.

    Raises:
        ValueError: If phone is too short or has unexpected characters
    """
    phone = (phone or "").strip()
    if not phone:
        return None
    if len(phone) < 9:
        raise ValueError("Phone number must have at least 9 digits")
    if not PHONE_PATTERN.match(phone):
        raise ValueError("Invalid phone number format")
    return phone


def validate_password(password: str, field: str = "Password") -> str:
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"{field} must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > 256:
        raise ValueError(f"{field} exceeds maximum length")
    return password


def validate_status(status: str) -> AccountStatus:
    try:
        return AccountStatus((status or "").strip().lower())
    except ValueError:
        raise ValueError(f"Status must be one of: {', '.join(AccountStatus.values())}")
