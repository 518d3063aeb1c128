"""
Structured Logging Module

JSON log lines for the whole gateway. structlog loggers (services) and
standard library loggers (middleware, uvicorn) share one processor chain,
so every line carries the same timestamp, level, logger and request id keys.

Reference Documents:
- GUIDELINES pp. 2309-2319: "Prometheus for metrics collection and structured logging"

Pattern: Singleton configuration (configure once at startup)
"""

import contextvars
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor


_configured: bool = False
_handler: Optional[logging.Handler] = None


# =============================================================================
# Request Correlation
# =============================================================================

_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "gateway_request_id", default=None
)


def get_correlation_id() -> Optional[str]:
    """Request id of the request being handled in this context, if any."""
    return _request_id.get()


@contextmanager
def correlation_id_context(correlation_id: str) -> Iterator[None]:
    """
    Bind a request id to every log line emitted inside the block.

    The previous value is restored on exit, so nested requests (test
    clients calling the app from inside a handler) keep their own ids.
    """
    token = _request_id.set(correlation_id)
    try:
        yield
    finally:
        _request_id.reset(token)


# =============================================================================
# Processors
# =============================================================================


def _inject_request_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    request_id = _request_id.get()
    if request_id is not None:
        event_dict.setdefault("correlation_id", request_id)
    return event_dict


def _utc_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _level_key(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    # add_log_level writes "level"; older structlog releases used "log_level"
    if "log_level" in event_dict:
        event_dict["level"] = event_dict.pop("log_level")
    return event_dict


SHARED_PROCESSORS: list[Processor] = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    _utc_timestamp,
    _inject_request_id,
    _level_key,
]


# =============================================================================
# Configuration
# =============================================================================


def configure_logging(
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """
    Install the JSON handler on the root logger.

    Only the first call configures anything; later calls return at once
    unless force=True (tests use it to redirect output to a buffer).

    Args:
        level: Root log level name, as validated by Settings.log_level
        stream: Destination for log lines (default: sys.stdout)
        force: Reconfigure even if already configured
    """
    global _configured, _handler

    if _configured and not force:
        return

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )

    root = logging.getLogger()
    # Only replace our own handler; handlers installed by others (pytest) stay
    if _handler is not None:
        root.removeHandler(_handler)
    _handler = logging.StreamHandler(stream or sys.stdout)
    _handler.setFormatter(formatter)
    root.addHandler(_handler)
    root.setLevel(level.upper())

    _configured = True


def reset_logging() -> None:
    """Remove the gateway handler so the next configure_logging() applies. Tests only."""
    global _configured, _handler
    if _handler is not None:
        logging.getLogger().removeHandler(_handler)
    _handler = None
    _configured = False


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Structured logger backed by the standard library logger `name`.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("usage entry dropped", identity="user_123")
    """
    return structlog.get_logger(name)
