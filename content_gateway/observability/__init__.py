"""
Observability Package

Structured logging and Prometheus metrics for the gateway.
"""

from content_gateway.observability.logging import (
    configure_logging,
    correlation_id_context,
    get_correlation_id,
    get_logger,
)
from content_gateway.observability.metrics import (
    MetricsMiddleware,
    get_metrics_app,
    record_quota_decision,
    record_upstream_request,
    record_usage_log_write,
)

__all__ = [
    "configure_logging",
    "correlation_id_context",
    "get_correlation_id",
    "get_logger",
    "MetricsMiddleware",
    "get_metrics_app",
    "record_quota_decision",
    "record_upstream_request",
    "record_usage_log_write",
]
