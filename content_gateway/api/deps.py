"""
API Dependencies

FastAPI dependency functions resolving the components built at application
start. Tests override them through dependency_overrides or by injecting
components into create_app().
"""

from fastapi import Request

from content_gateway.api.pipeline import GatewayComponents
from content_gateway.services.forwarder import ContentForwarder


def get_components(request: Request) -> GatewayComponents:
    """Components stored on app.state by create_app()."""
    return request.app.state.components


def get_forwarder(request: Request) -> ContentForwarder:
    """Upstream forwarder for the generate-content route."""
    return get_components(request).forwarder


__all__ = ["get_components", "get_forwarder"]
