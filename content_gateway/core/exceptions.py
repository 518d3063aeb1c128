"""
Custom exceptions for the Content Gateway.

This module provides a hierarchy of custom exceptions for the gateway pipeline.
All exceptions inherit from GatewayException and carry an error code plus the
HTTP status they map to, so middleware and route handlers render failures the
same way.

Reference:
- ANTI_PATTERN_ANALYSIS.md: Exception handling patterns
- GUIDELINES: Specific exceptions, always capture with 'as e'
"""

from enum import Enum
from typing import Any

from starlette.responses import JSONResponse


# =============================================================================
# Error Codes Enum
# =============================================================================


class ErrorCode(str, Enum):
    """
    Error codes for Content Gateway exceptions.

    These codes provide a consistent way to identify error types
    across the API and in logging.
    """

    GATEWAY_ERROR = "GATEWAY_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    FORWARDING_ERROR = "FORWARDING_ERROR"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    QUOTA_STORE_UNAVAILABLE = "QUOTA_STORE_UNAVAILABLE"
    USAGE_LOG_ERROR = "USAGE_LOG_ERROR"


# =============================================================================
# Base Exception
# =============================================================================


class GatewayException(Exception):
    """
    Base exception for all Content Gateway errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
        http_status: Status code used when the error terminates a request.
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.GATEWAY_ERROR,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code.
            **kwargs: Additional attributes to set on the exception.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code

        # Set any additional attributes from kwargs
        for key, value in kwargs.items():
            setattr(self, key, value)

    def response_headers(self) -> dict[str, str]:
        """Extra headers to send with the error response."""
        return {}


# =============================================================================
# AuthenticationError
# =============================================================================


class AuthenticationError(GatewayException):
    """
    Raised when a request carries no resolvable identity.

    Covers missing or malformed bearer credentials, tokens the identity
    provider rejects, and an identity provider that cannot be reached.

    Attributes:
        reason: Short machine-friendly reason used in logs.
    """

    http_status = 401

    def __init__(
        self,
        message: str = "Unauthorized",
        reason: str = "invalid_credential",
        error_code: str = ErrorCode.AUTHENTICATION_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.reason = reason

    def response_headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


# =============================================================================
# RateLimitError
# =============================================================================


class RateLimitError(GatewayException):
    """
    Exception for rate limiting.

    Raised when a client exceeds their rate limit.
    Includes retry information for clients.

    Attributes:
        retry_after: Seconds until the rate limit resets.
        limit: The rate limit that was exceeded.
    """

    http_status = 429

    def __init__(
        self,
        message: str = "Too Many Requests",
        retry_after: int | None = None,
        limit: int | None = None,
        error_code: str = ErrorCode.RATE_LIMIT_ERROR,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the rate limit error.

        Args:
            message: Human-readable error message.
            retry_after: Seconds until rate limit resets (optional).
            limit: The rate limit that was exceeded (optional).
            error_code: Machine-readable error code.
            **kwargs: Additional attributes.
        """
        super().__init__(message, error_code, **kwargs)
        self.retry_after = retry_after
        self.limit = limit

    def response_headers(self) -> dict[str, str]:
        headers = {}
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
            headers["X-RateLimit-Remaining"] = "0"
        return headers


# =============================================================================
# Server-side failures
# =============================================================================


class ConfigurationError(GatewayException):
    """
    Raised at request time when a required setting is missing.

    Attributes:
        setting: Name of the missing setting.
    """

    http_status = 500

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        error_code: str = ErrorCode.CONFIGURATION_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.setting = setting


class ForwardingError(GatewayException):
    """Raised when the outbound upstream request cannot be built."""

    http_status = 500

    def __init__(
        self,
        message: str = "Failed to create proxy request",
        error_code: str = ErrorCode.FORWARDING_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)


class UpstreamUnavailableError(GatewayException):
    """
    Raised when the upstream content API cannot be reached.

    Attributes:
        model: Model the request targeted.
    """

    http_status = 502

    def __init__(
        self,
        message: str = "Failed to contact upstream API",
        model: str | None = None,
        error_code: str = ErrorCode.UPSTREAM_UNAVAILABLE,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.model = model


class QuotaStoreUnavailableError(GatewayException):
    """Raised when the counter store is down and the limiter fails closed."""

    http_status = 503

    def __init__(
        self,
        message: str = "Rate limiter unavailable",
        error_code: str = ErrorCode.QUOTA_STORE_UNAVAILABLE,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)


class UsageLogError(GatewayException):
    """Raised by usage log stores; logged by the writer, never sent to clients."""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.USAGE_LOG_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)


# =============================================================================
# Response Rendering
# =============================================================================


def error_response(exc: GatewayException) -> JSONResponse:
    """
    Render a gateway exception as a JSON error response.

    Shared by middleware (which runs outside FastAPI's exception handlers)
    and the application-level exception handler.
    """
    error_code = exc.error_code.value if isinstance(exc.error_code, Enum) else exc.error_code
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "error_code": error_code},
        headers=exc.response_headers(),
    )
