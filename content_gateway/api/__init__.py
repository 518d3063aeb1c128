"""API Package - FastAPI routes, middleware, and dependencies.

Components:
- routes: API endpoint routers (health, generate)
- middleware: Pipeline stages and request/response middleware
- pipeline: Component construction and middleware ordering
- deps: FastAPI dependency injection functions

Note: Import routers directly from content_gateway.api.routes to avoid
circular imports.
"""

__all__ = ["routes", "middleware", "pipeline", "deps"]
