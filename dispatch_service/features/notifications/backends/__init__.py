"""Notification persistence backends."""

from dispatch_service.features.notifications.backends.base import NotificationBackend
from dispatch_service.features.notifications.backends.memory import InMemoryNotificationBackend

__all__ = ["InMemoryNotificationBackend", "NotificationBackend"]
