"""Identity provider exceptions."""


class IdentityProviderError(Exception):
    """Base exception for all identity provider operations."""
    pass


class IdentityAPIError(IdentityProviderError):
    """HTTP error from the identity provider.

    Attributes:
        status_code: HTTP status code
        message: Error message from response
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")


class IdentityAlreadyExistsError(IdentityProviderError):
    """Identity creation failed - username or email already exists."""
    pass


class IdentityNotFoundError(IdentityProviderError):
    pass


class InvalidCredentialsError(IdentityProviderError):
    """Password grant or refresh was rejected."""
    pass


class InvalidResetTokenError(IdentityProviderError):
    """Password reset token is malformed, expired or already used."""
    pass
