"""Exception hierarchy for storefront client calls."""

from typing import Any, Optional


class StorefrontError(Exception):
    """Base error for storefront API calls."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body


class AuthenticationError(StorefrontError):
    """No valid session (401)."""


class ForbiddenError(StorefrontError):
    """Session lacks permission (403)."""


class NotFoundError(StorefrontError):
    """Resource does not exist or is not visible to the caller (404)."""


class ValidationFailed(StorefrontError):
    """Input failed field validation, locally or on the server (422)."""

    def __init__(self, errors: dict[str, str], message: str = "Please correct the highlighted fields") -> None:
        super().__init__(message, status_code=422, response_body=errors)
        self.errors = errors


class RemoteRejection(StorefrontError):
    """The server understood the request and refused it (400/409)."""


class TransportError(StorefrontError):
    """Network failure, server error or missing configuration."""
