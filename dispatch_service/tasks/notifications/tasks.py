"""Notification task definitions.

- ``deliver_notification``: queued delivery of a single notification
- ``send_pending_notifications``: periodic sweep of due notifications

Both use the pipeline installed with ``configure_dispatch_pipeline`` during
worker startup.
"""

from __future__ import annotations

import logging

from dispatch_service.core.settings import get_task_settings
from dispatch_service.features.notifications.dependencies import get_dispatch_pipeline
from dispatch_service.infra.logging import set_log_context
from dispatch_service.tasks.broker import broker

logger = logging.getLogger(__name__)


@broker.task(task_name="notifications.deliver")
async def deliver_notification(notification_id: str) -> dict:
    """Deliver a notification handed to the queue by the pipeline.

    Args:
        notification_id: Id of a persisted notification.

    Returns:
        Dictionary with the notification id.

    Example:
        task = await deliver_notification.kiq(notification_id="42")
    """
    set_log_context(notification_id=notification_id)
    logger.info("Delivering queued notification")
    await get_dispatch_pipeline().delayed_send(notification_id)
    return {"notification_id": notification_id}


@broker.task(
    task_name="notifications.send_pending",
    schedule=[{"cron": get_task_settings().pending_schedule_cron}],
)
async def send_pending_notifications() -> dict:
    """Send every notification that is due.

    Scheduled: ``TASK_PENDING_SCHEDULE_CRON`` (every minute by default).

    Returns:
        Dictionary with the number of notifications attempted.
    """
    count = await get_dispatch_pipeline().send_pending_notifications()
    if count:
        logger.info("Sent pending notifications", extra={"count": count})
    else:
        logger.debug("No pending notifications")
    return {"count": count}
