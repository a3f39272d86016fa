from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base error for failures that map onto an HTTP response envelope."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, errors: list[dict[str, Any]] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class InvalidCredentials(AppError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class AccountLocked(AppError):
    status_code = 423
    code = "ACCOUNT_LOCKED"
    default_message = "Account temporarily locked due to too many failed login attempts"


class AccountInactive(AppError):
    status_code = 401
    code = "ACCOUNT_INACTIVE"
    default_message = "Account is deactivated"


class TokenExpired(AppError):
    status_code = 401
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class TokenInvalid(AppError):
    status_code = 401
    code = "TOKEN_INVALID"
    default_message = "Invalid token"


class InvalidRefreshToken(AppError):
    status_code = 401
    code = "INVALID_REFRESH_TOKEN"
    default_message = "Invalid refresh token"


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> ValidationError:
        return cls(errors=[{"field": field, "message": message}])


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"


class InternalError(AppError):
    pass
