"""Error taxonomy shared by the services and the HTTP layer.

Domain errors carry a stable ``code``, the HTTP ``status_code`` a transport
adapter should use, and a ``context`` dict with identifiers (never secrets)
for logging. ``DatabaseError`` marks infrastructure failures that a caller
may retry and must never read as a credential problem.
"""

from typing import Any


class AppError(Exception):
    """Base class for all errors raised by tokenward."""

    code = "INTERNAL_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "statusCode": self.status_code,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, context={self.context!r})"


class ValidationError(AppError):
    code = "VALIDATION_FAILED"
    status_code = 400


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401


class InvalidTokenError(AppError):
    """A presented token failed signature, expiry, type or replay checks."""

    code = "INVALID_TOKEN"
    status_code = 401


class TokenExpiredError(InvalidTokenError):
    code = "TOKEN_EXPIRED"


class InvalidSignatureError(InvalidTokenError):
    code = "INVALID_SIGNATURE"


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(AppError):
    code = "RESOURCE_NOT_FOUND"
    status_code = 404


class ConflictError(AppError):
    code = "RESOURCE_CONFLICT"
    status_code = 409


class DatabaseError(AppError):
    """A store call failed or timed out. Safe to retry."""

    code = "DATABASE_UNAVAILABLE"
    status_code = 503
    retryable = True


class ConfigurationError(AppError):
    code = "MISCONFIGURED"
