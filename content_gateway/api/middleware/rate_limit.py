"""
Rate Limiting Middleware

Second stage of the protected pipeline: counts the request against the
caller's fixed-window quota.

Reference Documents:
- GUIDELINES: Fixed window counters for per-client rate limiting
- ANTI_PATTERN_ANALYSIS: §3.1 No bare except clauses

Behavior:
- Return 429 with Retry-After when the quota is exceeded
- Add X-RateLimit-* headers to responses that do not already carry them
- Counter store outages follow the counter's fail-open policy (503 when closed)
"""

import logging
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from content_gateway.api.middleware.paths import PROTECTED_PREFIXES, is_protected_path
from content_gateway.core.context import require_request_context
from content_gateway.core.exceptions import (
    AuthenticationError,
    QuotaStoreUnavailableError,
    RateLimitError,
    error_response,
)
from content_gateway.observability.metrics import record_quota_decision
from content_gateway.services.quota import QuotaCounter


logger = logging.getLogger(__name__)


class QuotaMiddleware(BaseHTTPMiddleware):
    """
    Middleware for per-identity rate limiting.

    Pattern: BaseHTTPMiddleware for request interception

    Features:
    - Configurable quota counter (strategy pattern)
    - X-RateLimit-* headers on limited and allowed responses
    - 429 Too Many Requests when limit exceeded
    - Retry-After header on 429 responses
    """

    def __init__(
        self,
        app,
        quota_counter: QuotaCounter,
        protected_prefixes: Iterable[str] = PROTECTED_PREFIXES,
    ):
        """
        Initialize the middleware.

        Args:
            app: FastAPI/Starlette application
            quota_counter: QuotaCounter implementation to use
            protected_prefixes: Path prefixes subject to rate limiting
        """
        super().__init__(app)
        self.quota_counter = quota_counter
        self.protected_prefixes = tuple(protected_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """
        Process request through the quota counter.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/handler

        Returns:
            Response with rate limit headers
        """
        if not is_protected_path(request.url.path, self.protected_prefixes):
            return await call_next(request)

        try:
            context = require_request_context(request.scope)
        except AuthenticationError as e:
            # The identity stage runs first; reaching here anonymously is a wiring bug
            logger.error(f"Quota stage reached without identity: {request.url.path}")
            return error_response(e)

        try:
            decision = await self.quota_counter.check(context.identity)
        except QuotaStoreUnavailableError as e:
            return error_response(e)

        if not decision.allowed:
            record_quota_decision("denied")
            logger.warning(
                f"Rate limit exceeded for {context.identity}: "
                f"count={decision.count} limit={decision.limit}"
            )
            return error_response(
                RateLimitError(
                    "Too Many Requests",
                    retry_after=decision.retry_after,
                    limit=decision.limit,
                )
            )

        record_quota_decision("degraded" if decision.degraded else "allowed")
        response = await call_next(request)

        # Headers sent by the upstream are relayed unchanged
        if not decision.degraded:
            response.headers.setdefault("X-RateLimit-Limit", str(decision.limit))
            response.headers.setdefault("X-RateLimit-Remaining", str(decision.remaining))

        return response
