"""Base class for delivery adapters.

An adapter delivers one notification type (EMAIL, SMS, ...) through one
transport. The pipeline injects the backend and a logger into every adapter
it is constructed with.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from dispatch_service.features.notifications.exceptions import (
    BackendNotInjectedError,
    RecipientNotFoundError,
)
from dispatch_service.features.notifications.models import is_one_off_notification

if TYPE_CHECKING:
    from dispatch_service.features.attachments.models import StoredAttachment
    from dispatch_service.features.notifications.backends.base import NotificationBackend
    from dispatch_service.features.notifications.models import (
        AnyNotification,
        Context,
        NotificationType,
    )


@dataclass(frozen=True)
class RecipientName:
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class BaseNotificationAdapter(ABC):
    """Contract every delivery adapter implements.

    Attributes:
        key: Identifier recorded as ``adapter_used`` on sent notifications.
        notification_type: The notification type this adapter delivers.
        enqueue_notifications: Hand notifications to the queue service
            instead of delivering inline; a worker later calls
            ``DispatchPipeline.delayed_send``.
        supports_attachments: Whether ``send`` uses ``stored_attachments``.
    """

    key: ClassVar[str] = "base"
    supports_attachments: ClassVar[bool] = False

    def __init__(self, notification_type: NotificationType, enqueue_notifications: bool = False) -> None:
        self.notification_type = notification_type
        self.enqueue_notifications = enqueue_notifications
        self.backend: NotificationBackend | None = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def inject_backend(self, backend: NotificationBackend) -> None:
        self.backend = backend

    def inject_logger(self, logger: logging.Logger) -> None:
        self.logger = logger

    def _require_backend(self) -> NotificationBackend:
        if self.backend is None:
            raise BackendNotInjectedError(self.key)
        return self.backend

    @abstractmethod
    async def send(self, notification: AnyNotification, context: Context) -> None:
        """Deliver ``notification`` rendered with ``context``.

        Raises on delivery failure; the pipeline marks the notification
        FAILED and moves on to the next adapter.
        """

    async def prepare_attachments(self, attachments: list[StoredAttachment]) -> Any:
        """Convert stored attachments to the transport's format.

        Adapters that set ``supports_attachments`` override this.
        """
        if self.supports_attachments and attachments:
            self.logger.warning(
                "Adapter supports attachments but does not implement prepare_attachments",
                extra={"adapter": self.key},
            )
        return None

    async def get_recipient_email(self, notification: AnyNotification) -> str:
        """Resolve the address to deliver to.

        Raises:
            BackendNotInjectedError: The backend is needed but missing.
            RecipientNotFoundError: The account has no email address.
        """
        if is_one_off_notification(notification):
            return notification.email_or_phone

        email = await self._require_backend().get_user_email_from_notification(notification.id)
        if not email:
            raise RecipientNotFoundError(notification.id)
        return email

    def get_recipient_name(self, notification: AnyNotification, context: Context | None) -> RecipientName:
        """Recipient name from one-off fields or the render context."""
        if is_one_off_notification(notification):
            return RecipientName(notification.first_name or "", notification.last_name or "")

        context = context or {}
        first_name = context.get("first_name")
        last_name = context.get("last_name")
        return RecipientName(
            first_name if isinstance(first_name, str) else "",
            last_name if isinstance(last_name, str) else "",
        )
