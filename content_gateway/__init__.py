"""Content Gateway - authenticated, rate-limited generate-content proxy.

Note: Import `create_app` directly from `content_gateway.main` to avoid
circular imports.
"""

__all__ = ["main", "api", "core", "clients", "services", "observability"]
