"""
API Middleware Package

Middleware components for the Content Gateway API.

Reference Documents:
- GUIDELINES: Sinha pp. 89-91 (FastAPI middleware patterns)

Middleware Components:
- auth: bearer credential verification, attaches the request identity
- rate_limit: per-identity fixed window quota
- usage: asynchronous usage logging of completed requests
- logging: request/response logging with header redaction
"""

from content_gateway.api.middleware.auth import IdentityMiddleware
from content_gateway.api.middleware.logging import RequestLoggingMiddleware, redact_sensitive_headers
from content_gateway.api.middleware.paths import PROTECTED_PREFIXES, is_protected_path
from content_gateway.api.middleware.rate_limit import QuotaMiddleware
from content_gateway.api.middleware.usage import UsageLoggingMiddleware

__all__ = [
    # Protected pipeline
    "IdentityMiddleware",
    "QuotaMiddleware",
    "UsageLoggingMiddleware",
    "PROTECTED_PREFIXES",
    "is_protected_path",
    # Logging
    "RequestLoggingMiddleware",
    "redact_sensitive_headers",
]
