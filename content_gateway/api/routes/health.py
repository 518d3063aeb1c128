"""
Health Router

Unauthenticated liveness probe. The response is static and does not consult
the identity provider, counter store, log store or upstream, so it stays
green while any of them is degraded.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_class=PlainTextResponse)
async def health() -> PlainTextResponse:
    """Liveness check returning a static OK."""
    return PlainTextResponse("OK")
