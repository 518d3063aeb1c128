"""
Content Forwarder - Upstream Generate Content Relay

Builds the outbound request to the upstream models endpoint and sends it with
streaming enabled, so the caller can relay the body without buffering it.

Failure mapping:
- missing API key            -> ConfigurationError (500), no outbound call
- request cannot be built    -> ForwardingError (500)
- upstream unreachable       -> UpstreamUnavailableError (502)

The call is never retried. The client timeout comes from settings and
defaults to none.
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from content_gateway.core.config import DEFAULT_MODEL, DEFAULT_UPSTREAM_BASE_URL, Settings
from content_gateway.core.exceptions import (
    ConfigurationError,
    ForwardingError,
    UpstreamUnavailableError,
)
from content_gateway.clients.http import create_http_client
from content_gateway.observability.metrics import record_upstream_request

logger = logging.getLogger(__name__)

FORWARDED_CONTENT_TYPE = "application/json"
GENERATE_CONTENT_ACTION = "generateContent"


class ContentForwarder:
    """
    Relays generate-content requests to the upstream API.

    Example:
        >>> forwarder = ContentForwarder(http_client, api_key="...")
        >>> upstream = await forwarder.forward(body, model="gemini-2.5-flash")
        >>> async for chunk in upstream.aiter_raw():
        ...     ...
        >>> await upstream.aclose()
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_url: str = DEFAULT_UPSTREAM_BASE_URL,
        default_model: str = DEFAULT_MODEL,
    ) -> None:
        self._client = http_client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self.default_model = default_model

    def resolve_model(self, model: Optional[str]) -> str:
        """Requested model, or the default when none was given."""
        if model is None or not model.strip():
            return self.default_model
        return model.strip()

    def target_url(self, model: str) -> str:
        # Encoded so a model value cannot leave the models collection
        return f"{self._base_url}/{quote(model, safe='')}:{GENERATE_CONTENT_ACTION}"

    def build_request(
        self,
        body: bytes,
        model: str,
        method: str = "POST",
        accept_encoding: Optional[str] = None,
    ) -> httpx.Request:
        """
        Build the outbound request.

        The body is forwarded as-is with a fixed Content-Type. Accept-Encoding
        is passed through so a compressed upstream body stays valid when its
        bytes and Content-Encoding header are relayed unchanged.

        Raises:
            ConfigurationError: no upstream API key configured
            ForwardingError: the URL or request is invalid
        """
        if not self._api_key:
            raise ConfigurationError(
                "Server Configuration Error: Missing API Key",
                setting="gemini_api_key",
            )

        try:
            return self._client.build_request(
                method,
                self.target_url(model),
                params={"key": self._api_key},
                content=body,
                headers={
                    "Content-Type": FORWARDED_CONTENT_TYPE,
                    "Accept-Encoding": accept_encoding or "identity",
                },
            )
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            logger.error(f"Failed to build upstream request for model {model}: {e}")
            raise ForwardingError() from e

    async def forward(
        self,
        body: bytes,
        model: Optional[str] = None,
        method: str = "POST",
        accept_encoding: Optional[str] = None,
    ) -> httpx.Response:
        """
        Send the request upstream and return the open streaming response.

        The caller owns the returned response and must aclose() it once the
        body has been relayed.

        Raises:
            ConfigurationError, ForwardingError, UpstreamUnavailableError
        """
        resolved = self.resolve_model(model)
        is_default = resolved == self.default_model
        request = self.build_request(body, resolved, method=method, accept_encoding=accept_encoding)

        try:
            response = await self._client.send(request, stream=True)
        except httpx.UnsupportedProtocol as e:
            logger.error(f"Upstream base URL is not usable: {e}")
            raise ForwardingError() from e
        except httpx.TransportError as e:
            record_upstream_request(is_default, "unreachable")
            logger.warning(f"Upstream unreachable for model {resolved}: {type(e).__name__}: {e}")
            raise UpstreamUnavailableError("Failed to contact Gemini API", model=resolved) from e

        record_upstream_request(is_default, str(response.status_code))
        if response.status_code >= 500:
            logger.warning(f"Upstream returned {response.status_code} for model {resolved}")
        else:
            logger.debug(f"Upstream returned {response.status_code} for model {resolved}")
        return response

    async def aclose(self) -> None:
        await self._client.aclose()


def create_content_forwarder(settings: Settings) -> ContentForwarder:
    """Build the forwarder and its dedicated HTTP client from settings."""
    client = create_http_client(timeout_seconds=settings.upstream_timeout_seconds)
    return ContentForwarder(
        client,
        api_key=settings.gemini_api_key.get_secret_value(),
        base_url=settings.upstream_base_url,
        default_model=settings.default_model,
    )
