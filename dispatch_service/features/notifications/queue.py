"""Queue service contract and its taskiq implementation.

Adapters with ``enqueue_notifications`` set don't deliver inline: the
pipeline hands the notification id to a queue service, and a worker later
calls ``DispatchPipeline.delayed_send`` with it.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationQueueService(Protocol):
    """Accepts notification ids for deferred delivery."""

    async def enqueue_notification(self, notification_id: str) -> None: ...


class TaskiqNotificationQueueService:
    """Queues notifications by kicking the ``deliver_notification`` task.

    Args:
        task: Task to kick. Defaults to
            ``dispatch_service.tasks.notifications.tasks.deliver_notification``.
    """

    def __init__(self, task: Any = None) -> None:
        self._task = task

    def _get_task(self) -> Any:
        if self._task is None:
            from dispatch_service.tasks.notifications.tasks import deliver_notification

            self._task = deliver_notification
        return self._task

    async def enqueue_notification(self, notification_id: str) -> None:
        handle = await self._get_task().kiq(notification_id=notification_id)
        logger.info(
            "Notification queued for delivery",
            extra={"notification_id": notification_id, "task_id": handle.task_id},
        )
