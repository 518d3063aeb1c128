"""
Usage Logging Middleware

Innermost stage of the protected pipeline. Captures the status code the
handler actually sends and, once the response has been fully written, hands
one UsageLogEntry to the background writer. The response never waits on the
write.

Pure ASGI rather than BaseHTTPMiddleware: the entry must be produced after
the last body chunk is sent, which call_next() does not expose.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from content_gateway.api.middleware.paths import PROTECTED_PREFIXES, is_protected_path
from content_gateway.core.context import require_request_context
from content_gateway.core.exceptions import AuthenticationError
from content_gateway.services.usage_log import UsageLogEntry, UsageLogWriter

logger = logging.getLogger(__name__)

DEFAULT_STATUS_CODE = 200


class UsageLoggingMiddleware:
    """
    ASGI middleware recording completed protected requests.

    The status defaults to 200 when the handler never sends a response start,
    and becomes 500 when the handler raises before starting one.
    """

    def __init__(
        self,
        app: Callable[..., Any],
        writer: UsageLogWriter,
        protected_prefixes: Iterable[str] = PROTECTED_PREFIXES,
    ) -> None:
        self.app = app
        self.writer = writer
        self.protected_prefixes = tuple(protected_prefixes)

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] != "http" or not self.writer.enabled:
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        if not is_protected_path(path, self.protected_prefixes):
            await self.app(scope, receive, send)
            return

        started_at = datetime.now(timezone.utc)
        status_code = DEFAULT_STATUS_CODE
        response_started = False

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code, response_started
            if message["type"] == "http.response.start":
                status_code = message.get("status", DEFAULT_STATUS_CODE)
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            if not response_started:
                status_code = 500
            raise
        finally:
            self._record(scope, path, status_code, started_at)

    def _record(self, scope: dict[str, Any], path: str, status_code: int, started_at: datetime) -> None:
        try:
            context = require_request_context(scope)
        except AuthenticationError:
            logger.error(f"Usage logging reached without identity: {path}")
            return

        self.writer.submit(
            UsageLogEntry(
                identity=context.identity,
                endpoint=path,
                status_code=status_code,
                created_at=started_at,
            )
        )
