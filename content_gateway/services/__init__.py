"""
Services Package

Pipeline services: quota counter, usage log writer, and upstream forwarder.
"""

from content_gateway.services.forwarder import ContentForwarder, create_content_forwarder
from content_gateway.services.quota import (
    FixedWindowQuotaCounter,
    QuotaCounter,
    QuotaDecision,
    create_quota_counter,
)
from content_gateway.services.usage_log import (
    PostgresUsageLogStore,
    UsageLogEntry,
    UsageLogStore,
    UsageLogWriter,
    create_usage_log_writer,
)

__all__ = [
    "ContentForwarder",
    "create_content_forwarder",
    "QuotaCounter",
    "QuotaDecision",
    "FixedWindowQuotaCounter",
    "create_quota_counter",
    "UsageLogEntry",
    "UsageLogStore",
    "PostgresUsageLogStore",
    "UsageLogWriter",
    "create_usage_log_writer",
]
