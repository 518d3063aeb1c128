"""
Content Gateway - Main Application Entry Point

This module provides the FastAPI application for the Content Gateway: an
authenticated, rate-limited, usage-logged proxy in front of the upstream
generate-content API.

Run with:
    content-gateway                       # uses PORT (default 8080)
    uvicorn --factory content_gateway.main:create_app
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from content_gateway.api.pipeline import build_components, install_pipeline
from content_gateway.api.routes.generate import router as generate_router
from content_gateway.api.routes.health import router as health_router
from content_gateway.clients.identity import IdentityVerifier
from content_gateway.core.config import Settings, get_settings, warn_missing_configuration
from content_gateway.core.exceptions import GatewayException, error_response
from content_gateway.observability.logging import configure_logging, get_logger
from content_gateway.observability.metrics import get_metrics_app
from content_gateway.services.forwarder import ContentForwarder
from content_gateway.services.quota import QuotaCounter
from content_gateway.services.usage_log import UsageLogWriter

logger = get_logger(__name__)

# Application metadata
APP_NAME = "Content Gateway"
APP_VERSION = "1.0.0"
APP_DESCRIPTION = "Authenticated, rate-limited gateway for the generate-content API"


# =============================================================================
# Lifespan Context Manager
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager for startup/shutdown events.

    Startup creates the usage log table and starts its writers. Shutdown
    drains pending usage log writes (bounded), then closes the counter store,
    identity provider and upstream clients.

    Reference: Sinha (FastAPI) pp. 89-91 - Lifespan patterns
    """
    settings: Settings = app.state.settings
    components = app.state.components

    logger.info(
        "service starting",
        service=settings.service_name,
        version=APP_VERSION,
        environment=settings.environment,
        port=settings.port,
    )
    await components.start()
    app.state.initialized = True

    yield

    logger.info("service shutting down", service=settings.service_name)
    await components.close()
    app.state.initialized = False


async def handle_gateway_exception(request: Request, exc: GatewayException) -> JSONResponse:
    """Render gateway exceptions raised by route handlers."""
    return error_response(exc)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    *,
    identity_verifier: Optional[IdentityVerifier] = None,
    quota_counter: Optional[QuotaCounter] = None,
    usage_writer: Optional[UsageLogWriter] = None,
    forwarder: Optional[ContentForwarder] = None,
) -> FastAPI:
    """
    Build the gateway application.

    Every component is constructed from the one Settings instance unless an
    implementation is injected (tests inject fakes).
    """
    settings = settings or get_settings()
    configure_logging(level=settings.log_level)
    warn_missing_configuration(settings)

    components = build_components(
        settings,
        identity_verifier=identity_verifier,
        quota_counter=quota_counter,
        usage_writer=usage_writer,
        forwarder=forwarder,
    )

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.components = components
    app.state.initialized = False

    app.add_exception_handler(GatewayException, handle_gateway_exception)
    install_pipeline(app, components, settings)

    app.include_router(health_router)
    app.include_router(generate_router)
    app.mount("/metrics", get_metrics_app(), name="metrics")

    return app


def run() -> None:
    """Console entry point: serve the app on the configured port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
