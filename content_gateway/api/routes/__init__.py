"""
API Routes Package

- health: unauthenticated liveness check
- generate: protected generate-content proxy
"""

from content_gateway.api.routes.generate import router as generate_router
from content_gateway.api.routes.health import router as health_router

__all__ = ["generate_router", "health_router"]
