"""Notification delivery tasks."""

from dispatch_service.tasks.notifications.tasks import deliver_notification, send_pending_notifications

__all__ = ["deliver_notification", "send_pending_notifications"]
