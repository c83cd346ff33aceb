"""Application error taxonomy.

Every error that can reach an HTTP client is an AppError carrying a
machine-readable code and the status code it maps to.
"""

from __future__ import annotations

from typing import Any

ERR_INVALID_REQUEST = "invalid_request"
ERR_VALIDATION_FAILED = "validation_failed"
ERR_UNAUTHORIZED = "unauthorized"
ERR_API_KEY_EXPIRED = "api_key_expired"
ERR_FORBIDDEN = "forbidden"
ERR_NOT_FOUND = "not_found"
ERR_DATABASE = "database_error"
ERR_WHATSAPP_API = "whatsapp_api_error"


class AppError(Exception):
    """Base application error."""

    code = "internal_server_error"
    status_code = 500
    default_message = "An internal error occurred"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class BadRequestError(AppError):
    code = ERR_INVALID_REQUEST
    status_code = 400
    default_message = "Invalid request"


class ValidationError(AppError):
    """Entity or request field validation failed."""

    code = ERR_VALIDATION_FAILED
    status_code = 400
    default_message = "Validation failed"


class UnauthorizedError(AppError):
    code = ERR_UNAUTHORIZED
    status_code = 401
    default_message = "Authentication required"


class APIKeyExpiredError(UnauthorizedError):
    code = ERR_API_KEY_EXPIRED
    default_message = "API key expired"


class ForbiddenError(AppError):
    code = ERR_FORBIDDEN
    status_code = 403
    default_message = "Access forbidden"


class NotFoundError(AppError):
    code = ERR_NOT_FOUND
    status_code = 404
    default_message = "Resource not found"


class DatabaseError(AppError):
    """Storage collaborator failure. Not retried internally."""

    code = ERR_DATABASE
    status_code = 500
    default_message = "Database operation failed"


class WhatsAppAPIError(AppError):
    """Graph API rejected or failed an outbound call."""

    code = ERR_WHATSAPP_API
    status_code = 502
    default_message = "WhatsApp API error"

    def __init__(
        self,
        message: str | None = None,
        *,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.provider_code = provider_code
