"""
Pipeline Composer

Builds the gateway components from settings and installs the protected
middleware chain in its required order:

    Identity -> Quota -> Usage Logging -> generate-content handler

The quota stage only ever sees requests with a resolved identity, and the
usage stage sits inside the quota stage. Requests rejected with 401 or 429
therefore never produce usage log entries; they are visible in the request
log and Prometheus counters instead.

Starlette runs the most recently added middleware first, so stages are added
innermost first.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from content_gateway.api.middleware.auth import IdentityMiddleware
from content_gateway.api.middleware.logging import RequestLoggingMiddleware
from content_gateway.api.middleware.paths import PROTECTED_PREFIXES
from content_gateway.api.middleware.rate_limit import QuotaMiddleware
from content_gateway.api.middleware.usage import UsageLoggingMiddleware
from content_gateway.clients.http import create_http_client
from content_gateway.clients.identity import ClerkIdentityVerifier, IdentityVerifier
from content_gateway.core.config import Settings
from content_gateway.observability.metrics import MetricsMiddleware
from content_gateway.services.forwarder import ContentForwarder, create_content_forwarder
from content_gateway.services.quota import QuotaCounter, create_quota_counter
from content_gateway.services.usage_log import UsageLogWriter, create_usage_log_writer


@dataclass
class GatewayComponents:
    """The four collaborators of the protected pipeline."""

    identity_verifier: IdentityVerifier
    quota_counter: QuotaCounter
    usage_writer: UsageLogWriter
    forwarder: ContentForwarder

    async def start(self) -> None:
        await self.usage_writer.start()

    async def close(self) -> None:
        """Drain usage logs first, then release network clients."""
        await self.usage_writer.stop()
        await self.quota_counter.aclose()
        await self.identity_verifier.aclose()
        await self.forwarder.aclose()


def create_identity_verifier(settings: Settings) -> ClerkIdentityVerifier:
    return ClerkIdentityVerifier(
        secret_key=settings.clerk_secret_key.get_secret_value(),
        http_client=create_http_client(),
        api_url=settings.clerk_api_url,
        authorized_parties=settings.authorized_parties,
        jwks_cache_ttl_seconds=settings.clerk_jwks_cache_ttl_seconds,
        leeway_seconds=settings.clerk_clock_skew_seconds,
    )


def build_components(
    settings: Settings,
    *,
    identity_verifier: Optional[IdentityVerifier] = None,
    quota_counter: Optional[QuotaCounter] = None,
    usage_writer: Optional[UsageLogWriter] = None,
    forwarder: Optional[ContentForwarder] = None,
) -> GatewayComponents:
    """Build each component from settings unless one is supplied."""
    return GatewayComponents(
        identity_verifier=identity_verifier or create_identity_verifier(settings),
        quota_counter=quota_counter or create_quota_counter(settings),
        usage_writer=usage_writer or create_usage_log_writer(settings),
        forwarder=forwarder or create_content_forwarder(settings),
    )


def install_pipeline(
    app: FastAPI,
    components: GatewayComponents,
    settings: Settings,
    protected_prefixes: Iterable[str] = PROTECTED_PREFIXES,
) -> None:
    """
    Add the middleware stack to app.

    Resulting order, outermost first: CORS, metrics, request logging,
    identity, quota, usage logging.
    """
    prefixes = tuple(protected_prefixes)

    # Protected group, innermost first
    app.add_middleware(
        UsageLoggingMiddleware,
        writer=components.usage_writer,
        protected_prefixes=prefixes,
    )
    app.add_middleware(
        QuotaMiddleware,
        quota_counter=components.quota_counter,
        protected_prefixes=prefixes,
    )
    app.add_middleware(
        IdentityMiddleware,
        verifier=components.identity_verifier,
        protected_prefixes=prefixes,
    )

    # Ambient middleware wrapping every route
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Accept", "Authorization", "Content-Type", "X-CSRF-Token", "X-Request-ID"],
        expose_headers=["Link", "Retry-After", "X-Request-ID"],
        max_age=300,
    )
