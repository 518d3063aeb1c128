"""
Tests for the application factory and lifespan.

Reference: Sinha (FastAPI) pp. 89-91 - Lifespan patterns
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from content_gateway.core.config import Settings
from content_gateway.main import APP_VERSION, create_app


class TestCreateApp:
    """create_app() assembles routes and middleware."""

    def test_returns_fastapi_app(self, make_app):
        app = make_app()

        assert isinstance(app, FastAPI)
        assert app.version == APP_VERSION

    def test_routes_registered(self, make_app):
        app = make_app()

        assert app.url_path_for("health") == "/health"
        assert app.url_path_for("generate_content") == "/api/generate-content"
        assert app.url_path_for("metrics", path="/") == "/metrics/"
        assert {"/health", "/api/generate-content"} <= set(app.openapi()["paths"])

    def test_components_stored_on_state(self, make_app, usage_writer):
        app = make_app()

        assert app.state.components.usage_writer is usage_writer
        assert app.state.initialized is False

    def test_docs_disabled_in_production(self, make_app):
        app = make_app(settings=Settings(_env_file=None, environment="production"))

        with TestClient(app) as client:
            assert client.get("/docs").status_code == 404

    def test_starts_without_any_configuration(self):
        app = create_app(Settings(_env_file=None))

        with TestClient(app) as client:
            assert client.get("/health").text == "OK"
            protected = client.post("/api/generate-content", headers={"Authorization": "Bearer x"})

        assert protected.status_code == 401


class TestLifespan:
    """Startup starts the usage writer; shutdown closes every component."""

    def test_startup_and_shutdown(self, make_app, usage_store, usage_writer, identity_verifier):
        app = make_app()

        with TestClient(app):
            assert app.state.initialized is True
            assert usage_store.initialized
            assert usage_writer.running

        assert app.state.initialized is False
        assert not usage_writer.running
        assert usage_store.closed
        assert identity_verifier.closed


class TestMetricsEndpoint:
    """Prometheus exposition is served unauthenticated."""

    def test_metrics_exposed(self, make_app):
        with TestClient(make_app()) as client:
            client.get("/health")
            response = client.get("/metrics/")

        assert response.status_code == 200
        assert "content_gateway_requests_total" in response.text
