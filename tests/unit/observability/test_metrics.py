"""
Tests for Prometheus Metrics

Reference Documents:
- Newman (Building Microservices pp. 273-275): services expose response times and error rates
"""

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from content_gateway.observability.metrics import (
    UNMATCHED_PATH,
    MetricsMiddleware,
    get_metrics_app,
    record_quota_decision,
    record_upstream_request,
    record_usage_log_write,
    route_template,
)


def sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestRecordHelpers:
    """Helper functions increment labelled counters."""

    def test_record_quota_decision(self):
        before = sample("content_gateway_quota_decisions_total", {"outcome": "denied"})

        record_quota_decision("denied")

        assert sample("content_gateway_quota_decisions_total", {"outcome": "denied"}) == before + 1

    def test_record_usage_log_write(self):
        before = sample("content_gateway_usage_log_writes_total", {"result": "dropped"})

        record_usage_log_write("dropped")

        assert sample("content_gateway_usage_log_writes_total", {"result": "dropped"}) == before + 1

    def test_record_upstream_request_labels_model_selection(self):
        default = {"model": "default", "outcome": "unreachable"}
        requested = {"model": "requested", "outcome": "unreachable"}
        default_before = sample("content_gateway_upstream_requests_total", default)
        requested_before = sample("content_gateway_upstream_requests_total", requested)

        record_upstream_request(True, "unreachable")
        record_upstream_request(False, "unreachable")
        record_upstream_request(False, "unreachable")

        assert sample("content_gateway_upstream_requests_total", default) == default_before + 1
        assert sample("content_gateway_upstream_requests_total", requested) == requested_before + 2


def build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/metrics-test/ok")
    async def ok():
        return {"ok": True}

    @app.get("/metrics-test/missing")
    async def missing():
        raise HTTPException(status_code=404)

    app.add_middleware(MetricsMiddleware)
    app.mount("/metrics", get_metrics_app())
    return app


class TestMetricsMiddleware:
    """Per-request counters and latency."""

    def test_counts_requests_by_status(self):
        client = TestClient(build_app())
        ok_labels = {"method": "GET", "path": "/metrics-test/ok", "status": "200"}
        missing_labels = {"method": "GET", "path": "/metrics-test/missing", "status": "404"}
        ok_before = sample("content_gateway_requests_total", ok_labels)
        missing_before = sample("content_gateway_requests_total", missing_labels)

        client.get("/metrics-test/ok")
        client.get("/metrics-test/ok")
        client.get("/metrics-test/missing")

        assert sample("content_gateway_requests_total", ok_labels) == ok_before + 2
        assert sample("content_gateway_requests_total", missing_labels) == missing_before + 1

    def test_records_duration(self):
        client = TestClient(build_app())
        labels = {"method": "GET", "path": "/metrics-test/ok"}
        before = sample("content_gateway_request_duration_seconds_count", labels)

        client.get("/metrics-test/ok")

        assert sample("content_gateway_request_duration_seconds_count", labels) == before + 1

    def test_in_progress_returns_to_zero(self):
        client = TestClient(build_app())

        client.get("/metrics-test/ok")

        assert sample("content_gateway_requests_in_progress", {"method": "GET"}) == 0

    def test_metrics_path_excluded(self):
        client = TestClient(build_app())
        labels = {"method": "GET", "path": "/metrics", "status": "307"}
        before = sample("content_gateway_requests_total", labels)

        client.get("/metrics", follow_redirects=False)

        assert sample("content_gateway_requests_total", labels) == before


class TestLabelCardinality:
    """Caller-controlled request parts never become new label values."""

    def series_count(self) -> int:
        return sum(
            len(metric.samples)
            for metric in REGISTRY.collect()
            if metric.name == "content_gateway_requests"
        )

    def test_unmatched_paths_share_one_label(self):
        client = TestClient(build_app())
        labels = {"method": "GET", "path": "unmatched", "status": "404"}
        before = sample("content_gateway_requests_total", labels)
        client.get("/scan/warmup")
        series_before = self.series_count()

        for i in range(50):
            client.get(f"/scan/{i}")

        assert sample("content_gateway_requests_total", labels) == before + 51
        assert self.series_count() == series_before

    def test_route_template_labels_path_parameters(self):
        app = build_app()

        @app.get("/metrics-test/items/{item_id}")
        async def item(item_id: str):
            return {"id": item_id}

        client = TestClient(app)
        labels = {"method": "GET", "path": "/metrics-test/items/{item_id}", "status": "200"}
        before = sample("content_gateway_requests_total", labels)

        client.get("/metrics-test/items/a")
        client.get("/metrics-test/items/b")

        assert sample("content_gateway_requests_total", labels) == before + 2

    def test_unknown_methods_share_one_label(self):
        client = TestClient(build_app())
        labels = {"method": "OTHER", "path": "/metrics-test/ok", "status": "405"}
        before = sample("content_gateway_requests_total", labels)

        client.request("BREW", "/metrics-test/ok")
        client.request("SCAN", "/metrics-test/ok")

        assert sample("content_gateway_requests_total", labels) == before + 2

    def test_route_template_without_app_is_unmatched(self):
        assert route_template({"type": "http", "path": "/anything"}) == UNMATCHED_PATH


class TestExposition:
    """Prometheus text format on /metrics/."""

    def test_metrics_endpoint_lists_gateway_metrics(self):
        record_quota_decision("allowed")
        client = TestClient(build_app())

        response = client.get("/metrics/")

        assert response.status_code == 200
        assert "content_gateway_requests_total" in response.text
        assert "content_gateway_quota_decisions_total" in response.text

    def test_metrics_scrape_is_not_counted(self):
        client = TestClient(build_app())
        labels = {"method": "GET", "path": "/metrics/", "status": "200"}
        before = sample("content_gateway_requests_total", labels)

        client.get("/metrics/")

        assert sample("content_gateway_requests_total", labels) == before
