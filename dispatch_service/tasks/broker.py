"""Taskiq broker for queued notification delivery.

With ``TASK_BROKER_URL`` set, tasks travel through RabbitMQ
(taskiq-aio-pika) and run in a separate worker process:

    taskiq worker dispatch_service.tasks.broker:broker

Without it, taskiq's in-memory broker executes tasks in the calling
process, which is enough for development and tests.

Periodic tasks declare a ``schedule`` label and are picked up by:

    taskiq scheduler dispatch_service.tasks.broker:scheduler
"""

from __future__ import annotations

import logging

from taskiq import AsyncBroker, InMemoryBroker, TaskiqScheduler
from taskiq.schedule_sources import LabelScheduleSource
from taskiq_aio_pika import AioPikaBroker

from dispatch_service.core.settings import get_task_settings
from dispatch_service.infra.logging.config import setup_logging
from dispatch_service.tasks.middleware import LogContextMiddleware

logger = logging.getLogger(__name__)

task_settings = get_task_settings()
setup_logging()


def create_broker() -> AsyncBroker:
    """Build the broker selected by the task settings."""
    if task_settings.is_configured:
        logger.info(
            "Taskiq notification broker configured",
            extra={"queue": task_settings.queue_name},
        )
        return AioPikaBroker(
            url=task_settings.broker_url,
            queue_name=task_settings.queue_name,
            declare_exchange=True,
            declare_queues=True,
        ).with_middlewares(LogContextMiddleware())

    logger.warning("TASK_BROKER_URL not set - queued notifications run in-process")
    return InMemoryBroker().with_middlewares(LogContextMiddleware())


broker = create_broker()
scheduler = TaskiqScheduler(broker=broker, sources=[LabelScheduleSource(broker)])


async def start_taskiq() -> None:
    """Start the broker; call during application startup.

    Raises:
        ConnectionError: If the broker can't be reached.
    """
    logger.info("Starting Taskiq broker")
    try:
        await broker.startup()
    except Exception as e:
        logger.exception("Failed to start Taskiq broker", extra={"error": str(e)})
        raise
    logger.info("Taskiq broker started")


async def stop_taskiq() -> None:
    """Stop the broker; call during application shutdown."""
    logger.info("Stopping Taskiq broker")
    try:
        await broker.shutdown()
    except Exception as e:
        logger.exception("Error stopping Taskiq broker", extra={"error": str(e)})


# Workers import the broker module only, so task modules register here
import dispatch_service.tasks.notifications.tasks  # noqa: E402, F401
