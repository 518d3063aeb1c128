"""
HTTP Client Module - Client Factory

This module provides the HTTP client factory shared by the identity provider
client and the upstream forwarder, with connection pooling and timeouts.

Reference Documents:
- GUIDELINES pp. 2309: Connection pooling per downstream service (Newman)
- GUIDELINES pp. 2319: Timeout configuration and logging

Pattern: Factory pattern for creating configured HTTP clients
Anti-Pattern §1.1 Avoided: Uses Optional[T] with explicit None defaults
"""

from typing import Optional

import httpx


# =============================================================================
# Default Configuration Constants
# Pattern: Connection pooling per downstream service (GUIDELINES pp. 2309)
# =============================================================================


DEFAULT_TIMEOUT_SECONDS: float = 10.0
"""Default timeout for identity provider requests in seconds."""

DEFAULT_MAX_CONNECTIONS: int = 100
"""Maximum number of connections in the pool.

Reference: GUIDELINES pp. 2309 - "different connection pools for each downstream
service" to prevent resource exhaustion.
"""

DEFAULT_MAX_KEEPALIVE: int = 20
"""Maximum number of keepalive connections."""

USER_AGENT = "content-gateway/1.0"


# =============================================================================
# HTTP Client Factory
# =============================================================================


def create_http_client(
    base_url: Optional[str] = None,
    timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
    max_connections: Optional[int] = None,
    max_keepalive: Optional[int] = None,
    headers: Optional[dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create a configured HTTP client with connection pooling and timeouts.

    Connection-level retries are deliberately not configured: the upstream
    call is never retried, and identity lookups fail the request instead.

    Args:
        base_url: Base URL for all requests
        timeout_seconds: Request timeout in seconds; None disables timeouts
        max_connections: Maximum connections in pool (default: 100)
        max_keepalive: Maximum keepalive connections (default: 20)
        headers: Additional headers to include in all requests
        transport: Transport override (tests pass httpx.MockTransport)

    Returns:
        httpx.AsyncClient: Configured async HTTP client

    Example:
        >>> client = create_http_client(timeout_seconds=None)
        >>> async with client:
        ...     response = await client.post(url, content=body)
    """
    max_conn = max_connections if max_connections is not None else DEFAULT_MAX_CONNECTIONS
    max_keep = max_keepalive if max_keepalive is not None else DEFAULT_MAX_KEEPALIVE

    # Pattern: Bulkhead - separate pools prevent resource exhaustion
    limits = httpx.Limits(
        max_connections=max_conn,
        max_keepalive_connections=max_keep,
    )

    default_headers = {"User-Agent": USER_AGENT}
    if headers:
        default_headers.update(headers)

    if transport is None:
        transport = httpx.AsyncHTTPTransport(limits=limits)

    return httpx.AsyncClient(
        base_url=base_url or "",
        timeout=httpx.Timeout(timeout_seconds),
        headers=default_headers,
        transport=transport,
    )
