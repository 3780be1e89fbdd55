"""Taskiq middleware binding task metadata to the log context."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from taskiq import TaskiqMiddleware

from dispatch_service.infra.logging import clear_log_context, set_log_context

if TYPE_CHECKING:
    from taskiq import TaskiqMessage, TaskiqResult

logger = logging.getLogger(__name__)


class LogContextMiddleware(TaskiqMiddleware):
    """Adds ``task_id`` and ``task_name`` to every log record of a task.

    Example:
        broker = InMemoryBroker().with_middlewares(LogContextMiddleware())
    """

    def pre_execute(self, message: TaskiqMessage) -> TaskiqMessage:
        set_log_context(task_id=message.task_id, task_name=message.task_name)
        logger.debug("Task started")
        return message

    def post_execute(self, message: TaskiqMessage, result: TaskiqResult[Any]) -> None:
        if result.is_err:
            logger.warning(
                "Task finished with error",
                extra={"execution_time": result.execution_time},
            )
        else:
            logger.debug("Task finished", extra={"execution_time": result.execution_time})
        clear_log_context()
