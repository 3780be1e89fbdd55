"""Context management for structured logging.

Context fields set through :func:`set_log_context` are stored in a
contextvar and copied onto every log record by
:class:`ContextInjectingFilter`. Each asyncio task gets its own copy, so a
worker sending many notifications concurrently keeps their context apart.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Set logging context for the current async task.

    Args:
        **kwargs: Key-value pairs to add to logging context, for example
            ``notification_id`` or ``adapter``.

    Example:
        ```python
        set_log_context(notification_id="42")
        logger.info("Sending notification")  # Includes notification_id
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for the current async task.

    Mostly useful in tests and long-running workers that reuse a task for
    several notifications.
    """
    _log_context.set({})


def remove_from_log_context(*keys: str) -> None:
    """Remove specific keys from logging context.

    Args:
        *keys: Keys to remove from context.
    """
    current = _log_context.get().copy()
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


class ContextInjectingFilter(logging.Filter):
    """Logging filter that copies the contextvar fields onto each LogRecord.

    Attached to the queue handler so that records from every logger, not
    only the root logger, receive the context before they leave the
    emitting task.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject context into log record.

        Args:
            record: The log record to enhance with context.

        Returns:
            True (always allow the record to be logged).
        """
        context = _log_context.get()

        for key, value in context.items():
            # Don't overwrite fields passed explicitly via extra=
            if not hasattr(record, key):
                setattr(record, key, value)

        return True
