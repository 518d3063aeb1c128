"""
Prometheus Metrics Module

This module provides Prometheus metrics for the gateway pipeline.

Reference Documents:
- GUIDELINES pp. 2309-2319: "Prometheus for metrics collection and structured logging"
- Newman (Building Microservices pp. 273-275): Services "expose basic metrics
  themselves" including "response times and error rates"

Pattern: Metrics collection for observability
"""

import time
from typing import Sequence

from prometheus_client import Counter, Gauge, Histogram, make_asgi_app
from starlette.routing import Match
from starlette.types import ASGIApp, Message, Receive, Scope, Send

# =============================================================================
# Request Metrics
# =============================================================================

REQUESTS_TOTAL = Counter(
    name="content_gateway_requests_total",
    documentation="Total number of HTTP requests",
    labelnames=["method", "path", "status"],
)

REQUEST_DURATION_SECONDS = Histogram(
    name="content_gateway_request_duration_seconds",
    documentation="HTTP request duration in seconds",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

REQUESTS_IN_PROGRESS = Gauge(
    name="content_gateway_requests_in_progress",
    documentation="Number of HTTP requests currently being processed",
    labelnames=["method"],
)

# =============================================================================
# Pipeline Metrics
# =============================================================================

# outcome: allowed, denied, degraded
QUOTA_DECISIONS_TOTAL = Counter(
    name="content_gateway_quota_decisions_total",
    documentation="Rate limit decisions by outcome",
    labelnames=["outcome"],
)

# result: written, failed, dropped
USAGE_LOG_WRITES_TOTAL = Counter(
    name="content_gateway_usage_log_writes_total",
    documentation="Usage log entries by write result",
    labelnames=["result"],
)

# model: "default" or "requested"; outcome: upstream status code, or "unreachable"
UPSTREAM_REQUESTS_TOTAL = Counter(
    name="content_gateway_upstream_requests_total",
    documentation="Upstream content API calls by model selection and outcome",
    labelnames=["model", "outcome"],
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_quota_decision(outcome: str) -> None:
    """
    Record a rate limit decision.

    Args:
        outcome: "allowed", "denied" or "degraded"
    """
    QUOTA_DECISIONS_TOTAL.labels(outcome=outcome).inc()


def record_usage_log_write(result: str) -> None:
    """
    Record the fate of a usage log entry.

    Args:
        result: "written", "failed" or "dropped"
    """
    USAGE_LOG_WRITES_TOTAL.labels(result=result).inc()


def record_upstream_request(default_model: bool, outcome: str) -> None:
    """
    Record an upstream call.

    Model names come from the caller, so only whether the default model was
    used becomes a label. The model itself goes to the log.

    Args:
        default_model: True when the configured default model was targeted
        outcome: Upstream status code as a string, or "unreachable"
    """
    model = "default" if default_model else "requested"
    UPSTREAM_REQUESTS_TOTAL.labels(model=model, outcome=outcome).inc()


# =============================================================================
# Path Labels
# =============================================================================

UNMATCHED_PATH = "unmatched"
KNOWN_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})


def route_template(scope: Scope) -> str:
    """
    Path label for a request: the template of the route it matches.

    Raw paths come from the caller, so requests matching no route share
    the single "unmatched" label.
    """
    app = scope.get("app")
    for route in getattr(app, "routes", ()):
        match, _ = route.matches(scope)
        if match != Match.NONE:
            return getattr(route, "path", UNMATCHED_PATH)
    return UNMATCHED_PATH


# =============================================================================
# Request Middleware
# =============================================================================


class MetricsMiddleware:
    """
    Pure ASGI middleware timing every HTTP request.

    Requests are labelled by route template, never by raw path, and unknown
    methods share the "OTHER" label.

    The status label comes from the http.response.start message, so
    responses produced by inner middleware (401, 429) are counted too.
    Streaming responses are timed until their last chunk has been sent.
    A request that crashes before starting a response counts as "500".
    """

    def __init__(self, app: ASGIApp, exclude_paths: Sequence[str] = ("/metrics",)) -> None:
        self.app = app
        self.exclude_paths = tuple(exclude_paths)

    def _excluded(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        path = scope.get("path", "/")
        if scope["type"] != "http" or self._excluded(path):
            await self.app(scope, receive, send)
            return

        method = scope["method"] if scope["method"] in KNOWN_METHODS else "OTHER"
        path = route_template(scope)
        in_progress = REQUESTS_IN_PROGRESS.labels(method=method)
        status = "500"

        async def send_and_capture(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = str(message["status"])
            await send(message)

        in_progress.inc()
        started = time.perf_counter()
        try:
            await self.app(scope, receive, send_and_capture)
        finally:
            REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(
                time.perf_counter() - started
            )
            REQUESTS_TOTAL.labels(method=method, path=path, status=status).inc()
            in_progress.dec()


def get_metrics_app() -> ASGIApp:
    """ASGI app serving the default registry in Prometheus text format."""
    return make_asgi_app()
