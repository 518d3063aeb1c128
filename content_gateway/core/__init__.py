"""
Core module for the Content Gateway.

This module contains configuration, exceptions, and the request context.
"""

from content_gateway.core.config import Settings, get_settings, warn_missing_configuration
from content_gateway.core.context import (
    RequestContext,
    attach_request_context,
    get_request_context,
    require_request_context,
)
from content_gateway.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ErrorCode,
    ForwardingError,
    GatewayException,
    QuotaStoreUnavailableError,
    RateLimitError,
    UpstreamUnavailableError,
    UsageLogError,
    error_response,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "warn_missing_configuration",
    # Context
    "RequestContext",
    "attach_request_context",
    "get_request_context",
    "require_request_context",
    # Exceptions
    "ErrorCode",
    "GatewayException",
    "AuthenticationError",
    "RateLimitError",
    "ConfigurationError",
    "ForwardingError",
    "UpstreamUnavailableError",
    "QuotaStoreUnavailableError",
    "UsageLogError",
    "error_response",
]
