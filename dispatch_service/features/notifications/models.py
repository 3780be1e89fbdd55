"""Notification data structures.

A notification is either account-bound (``Notification``, addressed by
``user_id``) or one-off (``OneOffNotification``, carrying the recipient's
contact details). The ``kind`` field tells them apart.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from dispatch_service.features.attachments.models import AttachmentInput, StoredAttachment

# JSON-compatible mapping produced by context generators
Context = dict[str, Any]


class NotificationType(str, Enum):
    """Delivery channel of a notification."""

    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"
    IN_APP = "IN_APP"


class NotificationStatus(str, Enum):
    """Lifecycle state.

    PENDING_SEND moves to SENT, FAILED or CANCELLED; SENT moves to READ.
    READ and CANCELLED are terminal and nothing returns to PENDING_SEND.
    """

    PENDING_SEND = "PENDING_SEND"
    SENT = "SENT"
    FAILED = "FAILED"
    READ = "READ"
    CANCELLED = "CANCELLED"


class NotificationKind(str, Enum):
    """Recipient variant discriminant."""

    ACCOUNT = "account"
    ONE_OFF = "one_off"


@dataclass(kw_only=True)
class _NotificationFields:
    notification_type: NotificationType
    title: str | None = None
    body_template: str
    subject_template: str | None = None
    context_name: str
    context_parameters: dict[str, Any] = field(default_factory=dict)
    send_after: datetime | None = None
    extra_params: dict[str, Any] | None = None
    id: str | None = None
    status: NotificationStatus = NotificationStatus.PENDING_SEND
    context_used: Context | None = None
    adapter_used: str | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # Inputs accepted at creation; never persisted as-is
    attachments: list[AttachmentInput] = field(default_factory=list, repr=False)
    # Filled in before an attachment-capable adapter sends
    stored_attachments: list[StoredAttachment] = field(default_factory=list, repr=False)


@dataclass(kw_only=True)
class Notification(_NotificationFields):
    """Notification addressed to a user account."""

    user_id: str
    kind: NotificationKind = field(default=NotificationKind.ACCOUNT, init=False)


@dataclass(kw_only=True)
class OneOffNotification(_NotificationFields):
    """Notification addressed to a contact that has no account."""

    email_or_phone: str
    first_name: str | None = None
    last_name: str | None = None
    kind: NotificationKind = field(default=NotificationKind.ONE_OFF, init=False)


AnyNotification = Notification | OneOffNotification


def is_one_off_notification(notification: AnyNotification) -> bool:
    """Return True for notifications without a user account."""
    return notification.kind is NotificationKind.ONE_OFF


@dataclass(frozen=True, kw_only=True)
class RenderedNotification:
    """Output of a template renderer."""

    body: str
    subject: str | None = None
