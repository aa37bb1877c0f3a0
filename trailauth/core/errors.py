"""
Error taxonomy for the auth core.

Every client-visible failure is an AuthError subclass carrying a fixed HTTP
status and a stable error code. Anything else that escapes an operation is
converted to UnexpectedError at the orchestrator boundary.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class AuthError(Exception):
    """Base class for errors surfaced verbatim to the client."""

    status_code: int = 500
    error_code: str = "UNEXPECTED_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def headers(self) -> dict[str, str]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Structured error body returned to clients."""
        error: dict[str, Any] = {"code": self.error_code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {
            "error": error,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class DuplicateEmail(AuthError):
    status_code = 409
    error_code = "EMAIL_ALREADY_EXISTS"
    default_message = "Email already registered"


class UserNotFound(AuthError):
    status_code = 404
    error_code = "USER_NOT_FOUND"
    default_message = "User not found"


class InvalidCredentials(AuthError):
    status_code = 401
    error_code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class Unauthorized(AuthError):
    """No credential presented."""

    status_code = 401
    error_code = "UNAUTHORIZED"
    default_message = "Authentication required"

    @property
    def headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class InvalidToken(Unauthorized):
    error_code = "INVALID_TOKEN"
    default_message = "Invalid token"


class TokenExpired(Unauthorized):
    error_code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class Forbidden(AuthError):
    """Token was valid but the account behind it is gone or disabled."""

    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "Account is not active"


class InvalidOrExpiredCode(AuthError):
    status_code = 400
    error_code = "INVALID_VERIFICATION_CODE"
    default_message = "Invalid or expired verification code"


class RateLimitExceeded(AuthError):
    status_code = 429
    error_code = "RATE_LIMIT_EXCEEDED"
    default_message = "Too many requests. Please try again later"

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None) -> None:
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        super().__init__(
            message or f"Please wait {self.retry_after_seconds} seconds before retrying",
            details={"retryAfterSeconds": self.retry_after_seconds},
        )

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}


class ValidationFailed(AuthError):
    status_code = 400
    error_code = "VALIDATION_FAILED"
    default_message = "Request validation failed"


class UnexpectedError(AuthError):
    status_code = 500
    error_code = "UNEXPECTED_ERROR"
    default_message = "An unexpected error occurred"


# Fatal, non-client errors. These are never converted to UnexpectedError.

class ConfigurationError(RuntimeError):
    """Required configuration (e.g. the signing secret) is missing or invalid."""


class SessionIntegrityError(RuntimeError):
    """A refresh-session record with the same token hash already exists."""


class RevocationIncomplete(RuntimeError):
    """Bulk revocation could not confirm that no live session remains."""
