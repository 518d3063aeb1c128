"""
Identity Middleware

First stage of the protected pipeline: resolves the bearer credential to an
identity and attaches a RequestContext to the request. Requests without a
resolvable identity are answered with 401 here and never reach the quota or
usage logging stages.

Reference Documents:
- GUIDELINES: Sinha pp. 89-91 (FastAPI middleware patterns)
- ANTI_PATTERN_ANALYSIS: §3.1 No bare except clauses
"""

import logging
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from content_gateway.api.middleware.paths import PROTECTED_PREFIXES, is_protected_path
from content_gateway.clients.identity import IdentityVerifier, extract_bearer_token
from content_gateway.core.context import RequestContext, attach_request_context
from content_gateway.core.exceptions import AuthenticationError, error_response
from content_gateway.observability.logging import get_correlation_id

logger = logging.getLogger(__name__)


class IdentityMiddleware(BaseHTTPMiddleware):
    """
    Middleware that verifies callers of the protected route group.

    Pattern: BaseHTTPMiddleware for request interception
    """

    def __init__(
        self,
        app,
        verifier: IdentityVerifier,
        protected_prefixes: Iterable[str] = PROTECTED_PREFIXES,
    ):
        """
        Initialize the middleware.

        Args:
            app: FastAPI/Starlette application
            verifier: IdentityVerifier implementation to use
            protected_prefixes: Path prefixes that require an identity
        """
        super().__init__(app)
        self.verifier = verifier
        self.protected_prefixes = tuple(protected_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not is_protected_path(path, self.protected_prefixes):
            return await call_next(request)

        try:
            token = extract_bearer_token(request.headers.get("Authorization"))
            identity = await self.verifier.verify(token)
        except AuthenticationError as e:
            logger.warning(f"Authentication rejected: {request.method} {path} reason={e.reason}")
            return error_response(e)

        attach_request_context(
            request.scope,
            RequestContext(identity=identity, path=path, request_id=get_correlation_id()),
        )
        return await call_next(request)
