"""
Generate Content Router

The single proxied endpoint. The request body is relayed to the upstream
generateContent action; the upstream status, every upstream header and the
raw body bytes are relayed back without buffering or transformation.
"""

import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from content_gateway.api.deps import get_forwarder
from content_gateway.services.forwarder import ContentForwarder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Generate"])


async def relay_body(upstream: httpx.Response) -> AsyncIterator[bytes]:
    """Yield upstream body chunks as received, closing the upstream when done."""
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except httpx.HTTPError as e:
        # Headers are already sent; dropping the connection signals truncation
        logger.warning(f"Upstream stream interrupted: {type(e).__name__}: {e}")
        raise
    finally:
        await upstream.aclose()


def relay_response(upstream: httpx.Response) -> StreamingResponse:
    """Build a streaming response mirroring the upstream status and headers."""
    response = StreamingResponse(
        relay_body(upstream),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    # Raw pairs keep repeated headers (e.g. Set-Cookie) and upstream-specific ones
    response.raw_headers = [(name.lower(), value) for name, value in upstream.headers.raw]
    return response


@router.post("/generate-content")
async def generate_content(
    request: Request,
    model: Optional[str] = Query(
        default=None,
        description="Target model identifier; defaults to the configured model",
    ),
    forwarder: ContentForwarder = Depends(get_forwarder),
) -> StreamingResponse:
    """Proxy a generate-content call to the upstream API."""
    body = await request.body()
    upstream = await forwarder.forward(
        body,
        model=model,
        method=request.method,
        accept_encoding=request.headers.get("accept-encoding"),
    )
    return relay_response(upstream)
