"""In-app notification adapter.

In-app notifications are read by the recipient from the backend, so
"sending" only renders the content and stores it. The notification is
marked SENT by the pipeline afterwards, and becomes READ via
``DispatchPipeline.mark_read``.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from dispatch_service.core.exceptions import ValidationException
from dispatch_service.features.notifications.adapters.base import BaseNotificationAdapter
from dispatch_service.features.notifications.models import NotificationType, is_one_off_notification

if TYPE_CHECKING:
    from dispatch_service.features.notifications.models import AnyNotification, Context
    from dispatch_service.features.notifications.templates.renderer import (
        BaseNotificationTemplateRenderer,
    )


class InAppNotificationAdapter(BaseNotificationAdapter):
    """Stores rendered in-app content in ``extra_params['rendered']``."""

    key = "in_app"

    def __init__(self, template_renderer: BaseNotificationTemplateRenderer) -> None:
        super().__init__(NotificationType.IN_APP, enqueue_notifications=False)
        self.template_renderer = template_renderer

    async def send(self, notification: AnyNotification, context: Context) -> None:
        if is_one_off_notification(notification):
            raise ValidationException(
                detail="In-app notifications need a user account",
                type="in-app-requires-account",
                extra={"notification_id": notification.id},
            )

        rendered = await self.template_renderer.render(notification, context)
        extra_params = dict(notification.extra_params or {})
        extra_params["rendered"] = asdict(rendered)
        await self._require_backend().persist_notification_update(
            notification.id,
            {"extra_params": extra_params},
        )
        self.logger.info(
            "In-app notification stored",
            extra={"notification_id": notification.id, "user_id": notification.user_id},
        )
