"""Custom exceptions for the advisor backend."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Exception type → safe user-facing message mapping
_SAFE_MESSAGES: dict[str, str] = {
    "NotFoundError": "The requested resource was not found.",
    "AuthenticationError": "Authentication failed. Please log in again.",
    "ValidationError": "The provided input is invalid. Please check and try again.",
    "DatabaseError": "A database error occurred. Please try again.",
    "RegionRestrictedError": "AI features are not available in your region.",
    "CapabilityUnavailableError": "AI features are temporarily unavailable.",
    "ExternalServiceError": "An external service is temporarily unavailable.",
    "ValueError": "The provided value is invalid.",
}

_DEFAULT_MESSAGE = "I'm sorry, something went wrong processing your message. Please try again."


def sanitize_error(e: Exception) -> str:
    """Map an exception to a safe, user-facing error message.

    Walks the exception's MRO so subclasses inherit the message of
    their closest mapped ancestor.

    Args:
        e: The exception to sanitize.

    Returns:
        A safe, generic error message string.
    """
    for cls in type(e).__mro__:
        safe_msg = _SAFE_MESSAGES.get(cls.__name__)
        if safe_msg:
            return safe_msg

    return _DEFAULT_MESSAGE


class AdvisorException(Exception):
    """Base exception for all advisor-specific errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize advisor exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            status_code: HTTP status code.
            details: Additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class NotFoundError(AdvisorException):
    """Resource not found error (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "resource_id": resource_id},
        )


class AuthenticationError(AdvisorException):
    """Authentication failed error (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


class ValidationError(AdvisorException):
    """Input validation error (400)."""

    def __init__(
        self, message: str, field: str | None = None, details: dict[str, Any] | None = None
    ) -> None:
        """Initialize validation error.

        Args:
            message: Error message.
            field: Name of the invalid field.
            details: Additional validation details.
        """
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=error_details,
        )


class DatabaseError(AdvisorException):
    """Database operation error (500)."""

    def __init__(self, message: str = "A database error occurred") -> None:
        super().__init__(message=message, code="DATABASE_ERROR", status_code=500)


class ExternalServiceError(AdvisorException):
    """External service error (502)."""

    def __init__(self, service: str, message: str | None = None) -> None:
        """Initialize external service error.

        Args:
            service: Name of the external service.
            message: Optional error message.
        """
        super().__init__(
            message=message or f"External service '{service}' is unavailable",
            code="EXTERNAL_SERVICE_ERROR",
            status_code=502,
            details={"service": service},
        )


class CapabilityUnavailableError(AdvisorException):
    """A capability provider (completion or embedding) cannot serve requests (503).

    Raised for unreachable, unauthorized or region-restricted providers.
    Callers treat it as a degraded capability and switch to their
    fallback behaviour instead of failing.
    """

    def __init__(self, capability: str, reason: str) -> None:
        super().__init__(
            message=f"{capability} capability unavailable: {reason}",
            code="CAPABILITY_UNAVAILABLE",
            status_code=503,
            details={"capability": capability, "reason": reason},
        )
        self.capability = capability
        self.reason = reason


class RegionRestrictedError(CapabilityUnavailableError):
    """The provider refuses requests from the caller's country or region."""

    def __init__(self, capability: str) -> None:
        super().__init__(capability, "unsupported_country_region_territory")
        self.code = "REGION_RESTRICTED"


class UnknownToolError(AdvisorException):
    """The model requested a tool outside the supported set."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            message=f"Unknown tool: {tool_name}",
            code="UNKNOWN_TOOL",
            status_code=400,
            details={"tool_name": tool_name},
        )


class ToolArgumentError(AdvisorException):
    """Tool arguments failed to parse or validate against the tool schema."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(
            message=f"Invalid arguments for {tool_name}: {message}",
            code="TOOL_ARGUMENT_ERROR",
            status_code=400,
            details={"tool_name": tool_name},
        )
