"""Logging infrastructure.

Structured logging with:
- JSONL format with OpenTelemetry trace correlation
- Automatic context injection (notification_id, adapter, ...)
- QueueHandler + QueueListener for non-blocking I/O
- Lazy evaluation for expensive debug output

Basic usage:
    from dispatch_service.infra.logging import set_log_context
    import logging

    logger = logging.getLogger(__name__)

    set_log_context(notification_id="42")
    logger.info("Sending notification")  # Includes notification_id

    from dispatch_service.infra.logging import get_lazy_logger

    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"Context: {dump(context)}")
"""

from dispatch_service.infra.logging.config import configure_logging, setup_logging, shutdown
from dispatch_service.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    remove_from_log_context,
    set_log_context,
)
from dispatch_service.infra.logging.formatters import JSONFormatter
from dispatch_service.infra.logging.lazy import LazyLoggerAdapter, LazyString, get_lazy_logger, lazy

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "LazyString",
    "clear_log_context",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "lazy",
    "remove_from_log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
