"""
Request-scoped pipeline context.

The identity stage attaches a RequestContext to the ASGI scope state once the
caller is verified. Later stages read it back through the typed accessors
below instead of an untyped key lookup, so a stage that needs an identity
either gets a RequestContext or an AuthenticationError.
"""

from dataclasses import dataclass
from typing import Any, MutableMapping, Optional

from content_gateway.core.exceptions import AuthenticationError

Scope = MutableMapping[str, Any]

_STATE_KEY = "gateway_context"


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request pipeline context.

    Attributes:
        identity: Stable user identifier resolved by the identity provider
        path: Request path the identity was resolved for
        request_id: Correlation id of the request, if one was assigned
    """

    identity: str
    path: str
    request_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.identity:
            raise ValueError("RequestContext requires a non-empty identity")


def attach_request_context(scope: Scope, context: RequestContext) -> None:
    """Attach the context to the request's scope state."""
    scope.setdefault("state", {})[_STATE_KEY] = context


def get_request_context(scope: Scope) -> Optional[RequestContext]:
    """Return the attached context, or None for anonymous requests."""
    state = scope.get("state")
    if not state:
        return None
    context = state.get(_STATE_KEY)
    return context if isinstance(context, RequestContext) else None


def require_request_context(scope: Scope) -> RequestContext:
    """
    Return the attached context.

    Raises:
        AuthenticationError: if no identity was resolved for this request.
    """
    context = get_request_context(scope)
    if context is None:
        raise AuthenticationError("Unauthorized", reason="missing_identity")
    return context
