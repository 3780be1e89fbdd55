"""Persistence contract for notifications."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dispatch_service.features.notifications.models import AnyNotification, Context


class NotificationBackend(ABC):
    """Stores notifications and their lifecycle transitions.

    The conditional flags on the ``mark_as_*`` methods are how the pipeline
    stays correct without locks: with ``check_is_pending=True`` a backend
    must only transition a notification that is still PENDING_SEND and
    raise ``NotificationStatusConflictError`` otherwise. Paged getters use
    zero-based ``page`` numbers.
    """

    # ──────────────────────────────────────────────────────────────
    # Writes
    # ──────────────────────────────────────────────────────────────

    @abstractmethod
    async def persist_notification(self, notification: AnyNotification) -> AnyNotification:
        """Store a new notification and return it with ``id`` and timestamps set."""

    @abstractmethod
    async def persist_notification_update(
        self,
        notification_id: str,
        changes: dict[str, Any],
    ) -> AnyNotification:
        """Apply field changes to a stored notification and return it.

        Raises:
            NotificationNotFoundError: No notification with ``notification_id``.
        """

    @abstractmethod
    async def bulk_persist_notifications(self, notifications: list[AnyNotification]) -> list[str]:
        """Store many new notifications and return their ids in input order."""

    @abstractmethod
    async def mark_as_sent(
        self,
        notification_id: str,
        check_is_pending: bool = True,
        adapter_used: str | None = None,
    ) -> AnyNotification:
        """Transition to SENT and record ``sent_at``."""

    @abstractmethod
    async def mark_as_failed(self, notification_id: str, check_is_pending: bool = True) -> AnyNotification:
        """Transition to FAILED."""

    @abstractmethod
    async def mark_as_read(self, notification_id: str, check_is_sent: bool = True) -> AnyNotification:
        """Transition SENT to READ and record ``read_at``."""

    @abstractmethod
    async def cancel_notification(self, notification_id: str) -> None:
        """Transition a pending notification to CANCELLED."""

    @abstractmethod
    async def store_context_used(self, notification_id: str, context: Context) -> None:
        """Record the context a notification was rendered with."""

    # ──────────────────────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_notification(self, notification_id: str, for_update: bool = False) -> AnyNotification | None:
        """Return a notification or None.

        ``for_update`` lets SQL backends lock the row for the caller's transaction.
        """

    @abstractmethod
    async def get_all_pending_notifications(self) -> list[AnyNotification]:
        """Pending notifications whose ``send_after`` is unset or in the past."""

    @abstractmethod
    async def get_pending_notifications(self, page: int, page_size: int) -> list[AnyNotification]: ...

    @abstractmethod
    async def get_all_future_notifications(self) -> list[AnyNotification]:
        """Pending notifications scheduled after now."""

    @abstractmethod
    async def get_future_notifications(self, page: int, page_size: int) -> list[AnyNotification]: ...

    @abstractmethod
    async def get_all_future_notifications_from_user(self, user_id: str) -> list[AnyNotification]: ...

    @abstractmethod
    async def get_future_notifications_from_user(
        self,
        user_id: str,
        page: int,
        page_size: int,
    ) -> list[AnyNotification]: ...

    @abstractmethod
    async def get_notifications(self, page: int, page_size: int) -> list[AnyNotification]:
        """Every notification regardless of status, in a stable order."""

    @abstractmethod
    async def filter_all_in_app_unread_notifications(self, user_id: str) -> list[AnyNotification]:
        """SENT in-app notifications of a user that were not read yet."""

    @abstractmethod
    async def filter_in_app_unread_notifications(
        self,
        user_id: str,
        page: int,
        page_size: int,
    ) -> list[AnyNotification]: ...

    @abstractmethod
    async def get_user_email_from_notification(self, notification_id: str) -> str | None:
        """Email address of the account a notification is addressed to."""
