"""
Clients Package

HTTP client factory and the identity provider client.
"""

from content_gateway.clients.http import (
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_MAX_KEEPALIVE,
    DEFAULT_TIMEOUT_SECONDS,
    create_http_client,
)
from content_gateway.clients.identity import (
    ClerkIdentityVerifier,
    IdentityVerifier,
    extract_bearer_token,
)

__all__ = [
    # HTTP Client Factory
    "create_http_client",
    "DEFAULT_MAX_CONNECTIONS",
    "DEFAULT_MAX_KEEPALIVE",
    "DEFAULT_TIMEOUT_SECONDS",
    # Identity Provider
    "IdentityVerifier",
    "ClerkIdentityVerifier",
    "extract_bearer_token",
]
