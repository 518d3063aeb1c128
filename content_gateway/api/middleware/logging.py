"""
Request Logging Middleware

One log line per request, written when the handler returns. It runs outside
the protected pipeline, so rejected requests (401, 429) are logged here with
their status even though they never reach the usage log.

Every request runs under a request id taken from X-Request-ID (when well
formed) or generated. The id is bound to all log lines emitted while the
request is handled and returned to the caller.

Reference Documents:
- GUIDELINES: Sinha pp. 89-91 (FastAPI middleware patterns)
- ANTI_PATTERN_ANALYSIS: §3.1 No bare except clauses
"""

import logging
import re
import time
import uuid
from typing import Awaitable, Callable, Mapping, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from content_gateway.core.context import get_request_context
from content_gateway.observability.logging import correlation_id_context


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

# Substrings; any header whose lowercased name contains one is redacted
_CREDENTIAL_MARKERS = ("authorization", "api-key", "api_key", "apikey", "token", "cookie")
REDACTED = "[REDACTED]"


def redact_sensitive_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy of `headers` with credential-bearing values replaced by [REDACTED]."""
    return {
        name: REDACTED if any(marker in name.lower() for marker in _CREDENTIAL_MARKERS) else value
        for name, value in headers.items()
    }


def resolve_request_id(value: Optional[str]) -> str:
    """Use the caller's request id when it is well formed, else generate one."""
    if value and _REQUEST_ID_PATTERN.match(value):
        return value
    return uuid.uuid4().hex


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, status, identity and duration for every request.

    4xx and 5xx responses are logged at WARNING, everything else at INFO.
    Request headers are dumped (redacted) only when DEBUG is enabled.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        peer = request.client.host if request.client else "unknown"
        line = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        with correlation_id_context(request_id):
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"{line} from {peer} headers={redact_sensitive_headers(request.headers)}")

            try:
                response = await call_next(request)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.error(
                    f"{line} failed from {peer}: {type(e).__name__}: {e} "
                    f"duration={elapsed_ms:.2f}ms"
                )
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            context = get_request_context(request.scope)
            logger.log(
                logging.WARNING if response.status_code >= 400 else logging.INFO,
                f"{line} {response.status_code} from {peer} "
                f"identity={context.identity if context else 'anonymous'} "
                f"duration={elapsed_ms:.2f}ms",
            )

        # Relayed upstream responses keep their own request id
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response
