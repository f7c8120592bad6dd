"""Custom exceptions for Perseus.

Provides a hierarchy of exceptions with HTTP status codes and
structured error responses. The same classes are raised by the
graph search core, the REST service, and the CLI.
"""

from typing import Any


class PerseusError(Exception):
    """Base exception for all Perseus errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize exception with optional details.

        Args:
            message: Human-readable error message.
            details: Additional error details for debugging.
            cause: Original exception that caused this error.
        """
        self.message = message or self.message
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# 400 Bad Request errors
class ValidationError(PerseusError):
    """Request validation failed."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    message = "Request validation failed"


class InvalidArgumentError(ValidationError):
    """Malformed module identity, non-positive depth, or missing module."""

    error_code = "INVALID_ARGUMENT"
    message = "Invalid argument"


class InvalidPageTokenError(ValidationError):
    """Page token could not be decoded or belongs to another query."""

    error_code = "INVALID_PAGE_TOKEN"
    message = "Invalid page token"


# 404 Not Found errors
class NotFoundError(PerseusError):
    """Resource not found."""

    status_code = 404
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ModuleVersionNotFoundError(NotFoundError):
    """Module or module version not found."""

    error_code = "MODULE_NOT_FOUND"
    message = "Module not found"


# 500 Internal Server errors
class InternalError(PerseusError):
    """Internal server error."""

    status_code = 500
    error_code = "INTERNAL_ERROR"
    message = "An internal error occurred"


class DatabaseError(InternalError):
    """Database operation failed."""

    error_code = "DATABASE_ERROR"
    message = "Database operation failed"


class ConfigurationError(InternalError):
    """Configuration error."""

    error_code = "CONFIGURATION_ERROR"
    message = "Configuration error"


class SearchCancelledError(PerseusError):
    """A traversal or path search observed cancellation.

    Never surfaced to users: path search consumers treat it as a clean stop.
    """

    status_code = 499
    error_code = "CANCELLED"
    message = "The operation was cancelled"


# 502 Bad Gateway errors
class QueryError(PerseusError):
    """A graph query against the Perseus server failed."""

    status_code = 502
    error_code = "QUERY_ERROR"
    message = "Graph query failed"


class ModuleProxyError(QueryError):
    """A Go module proxy request failed."""

    error_code = "MODULE_PROXY_ERROR"
    message = "Module proxy request failed"


# 503 Service Unavailable errors
class TransientUnavailableError(QueryError):
    """The server was temporarily unavailable; the query may be retried."""

    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"
    message = "Service temporarily unavailable"
