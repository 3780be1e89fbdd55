"""Delivery adapters."""

from dispatch_service.features.notifications.adapters.base import BaseNotificationAdapter, RecipientName
from dispatch_service.features.notifications.adapters.email import SmtpEmailAdapter
from dispatch_service.features.notifications.adapters.in_app import InAppNotificationAdapter

__all__ = [
    "BaseNotificationAdapter",
    "InAppNotificationAdapter",
    "RecipientName",
    "SmtpEmailAdapter",
]
