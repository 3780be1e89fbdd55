"""In-memory notification backend.

Keeps everything in dictionaries for the lifetime of the process. Useful for
tests, local development and as the source or destination of a
``migrate_to_backend`` run. Each method body runs without awaiting, so every
operation is atomic with respect to the event loop.
"""

from __future__ import annotations

import copy
import dataclasses
import itertools
from datetime import UTC, datetime
from typing import Any

from dispatch_service.core.exceptions import NotFoundException, ValidationException
from dispatch_service.features.attachments.backend import AttachmentBackend
from dispatch_service.features.attachments.exceptions import (
    DuplicateChecksumError,
    ReferencedFileNotFoundError,
)
from dispatch_service.features.attachments.models import (
    AttachmentData,
    AttachmentFileRecord,
    AttachmentLink,
)
from dispatch_service.features.notifications.backends.base import NotificationBackend
from dispatch_service.features.notifications.exceptions import (
    NotificationNotFoundError,
    NotificationStatusConflictError,
)
from dispatch_service.features.notifications.models import (
    AnyNotification,
    Context,
    NotificationKind,
    NotificationStatus,
    NotificationType,
)

# Fields callers may not change through persist_notification_update
_IMMUTABLE_FIELDS = frozenset({"id", "kind", "created_at"})


def _paginate(items: list[AnyNotification], page: int, page_size: int) -> list[AnyNotification]:
    if page < 0 or page_size < 1:
        raise ValidationException(
            detail="page must be >= 0 and page_size >= 1",
            extra={"page": page, "page_size": page_size},
        )
    start = page * page_size
    return items[start : start + page_size]


class InMemoryNotificationBackend(NotificationBackend, AttachmentBackend):
    """Dictionary-backed notification and attachment storage.

    Args:
        user_emails: Email address per user id, used to address account
            notifications.
    """

    def __init__(self, user_emails: dict[str, str] | None = None) -> None:
        self.user_emails: dict[str, str] = dict(user_emails or {})
        self._notifications: dict[str, AnyNotification] = {}
        self._files: dict[str, AttachmentFileRecord] = {}
        self._file_ids_by_checksum: dict[str, str] = {}
        self._links: dict[str, list[AttachmentLink]] = {}
        self._notification_ids = itertools.count(1)
        self._link_ids = itertools.count(1)

    # ──────────────────────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────────────────────

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    @staticmethod
    def _snapshot(notification: AnyNotification) -> AnyNotification:
        # Creation inputs and live attachment accessors are never persisted
        stripped = dataclasses.replace(notification, attachments=[], stored_attachments=[])
        return copy.deepcopy(stripped)

    def _get_stored(self, notification_id: str) -> AnyNotification:
        stored = self._notifications.get(notification_id)
        if stored is None:
            raise NotificationNotFoundError(notification_id)
        return stored

    def _where(self, predicate: Any) -> list[AnyNotification]:
        return [copy.deepcopy(n) for n in self._notifications.values() if predicate(n)]

    @staticmethod
    def _aware(moment: datetime) -> datetime:
        return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)

    def _is_due(self, notification: AnyNotification) -> bool:
        return notification.status is NotificationStatus.PENDING_SEND and (
            notification.send_after is None or self._aware(notification.send_after) <= self._now()
        )

    def _is_future(self, notification: AnyNotification) -> bool:
        return (
            notification.status is NotificationStatus.PENDING_SEND
            and notification.send_after is not None
            and self._aware(notification.send_after) > self._now()
        )

    @staticmethod
    def _belongs_to(notification: AnyNotification, user_id: str) -> bool:
        return notification.kind is NotificationKind.ACCOUNT and notification.user_id == user_id

    @staticmethod
    def _is_unread_in_app(notification: AnyNotification) -> bool:
        return (
            notification.notification_type is NotificationType.IN_APP
            and notification.status is NotificationStatus.SENT
        )

    def _require_status(self, notification: AnyNotification, expected: NotificationStatus) -> None:
        if notification.status is not expected:
            raise NotificationStatusConflictError(
                notification.id or "",
                expected=expected.value,
                actual=notification.status.value,
            )

    # ──────────────────────────────────────────────────────────────
    # Notification writes
    # ──────────────────────────────────────────────────────────────

    async def persist_notification(self, notification: AnyNotification) -> AnyNotification:
        stored = self._snapshot(notification)
        now = self._now()
        stored.id = str(next(self._notification_ids))
        stored.created_at = now
        stored.updated_at = now
        self._notifications[stored.id] = stored
        return copy.deepcopy(stored)

    async def persist_notification_update(
        self,
        notification_id: str,
        changes: dict[str, Any],
    ) -> AnyNotification:
        stored = self._get_stored(notification_id)
        for name, value in changes.items():
            if name in _IMMUTABLE_FIELDS or not hasattr(stored, name):
                raise ValidationException(
                    detail=f"Field {name!r} cannot be updated",
                    extra={"notification_id": notification_id, "field": name},
                )
            setattr(stored, name, copy.deepcopy(value))
        stored.updated_at = self._now()
        return copy.deepcopy(stored)

    async def bulk_persist_notifications(self, notifications: list[AnyNotification]) -> list[str]:
        return [(await self.persist_notification(n)).id for n in notifications]

    async def mark_as_sent(
        self,
        notification_id: str,
        check_is_pending: bool = True,
        adapter_used: str | None = None,
    ) -> AnyNotification:
        stored = self._get_stored(notification_id)
        if check_is_pending:
            self._require_status(stored, NotificationStatus.PENDING_SEND)
        now = self._now()
        stored.status = NotificationStatus.SENT
        stored.sent_at = now
        stored.updated_at = now
        if adapter_used is not None:
            stored.adapter_used = adapter_used
        return copy.deepcopy(stored)

    async def mark_as_failed(self, notification_id: str, check_is_pending: bool = True) -> AnyNotification:
        stored = self._get_stored(notification_id)
        if check_is_pending:
            self._require_status(stored, NotificationStatus.PENDING_SEND)
        stored.status = NotificationStatus.FAILED
        stored.updated_at = self._now()
        return copy.deepcopy(stored)

    async def mark_as_read(self, notification_id: str, check_is_sent: bool = True) -> AnyNotification:
        stored = self._get_stored(notification_id)
        if check_is_sent:
            self._require_status(stored, NotificationStatus.SENT)
        now = self._now()
        stored.status = NotificationStatus.READ
        stored.read_at = now
        stored.updated_at = now
        return copy.deepcopy(stored)

    async def cancel_notification(self, notification_id: str) -> None:
        stored = self._get_stored(notification_id)
        self._require_status(stored, NotificationStatus.PENDING_SEND)
        stored.status = NotificationStatus.CANCELLED
        stored.updated_at = self._now()

    async def store_context_used(self, notification_id: str, context: Context) -> None:
        stored = self._get_stored(notification_id)
        stored.context_used = copy.deepcopy(context)
        stored.updated_at = self._now()

    # ──────────────────────────────────────────────────────────────
    # Notification reads
    # ──────────────────────────────────────────────────────────────

    async def get_notification(self, notification_id: str, for_update: bool = False) -> AnyNotification | None:
        stored = self._notifications.get(notification_id)
        return copy.deepcopy(stored) if stored is not None else None

    async def get_all_pending_notifications(self) -> list[AnyNotification]:
        return self._where(self._is_due)

    async def get_pending_notifications(self, page: int, page_size: int) -> list[AnyNotification]:
        return _paginate(self._where(self._is_due), page, page_size)

    async def get_all_future_notifications(self) -> list[AnyNotification]:
        return self._where(self._is_future)

    async def get_future_notifications(self, page: int, page_size: int) -> list[AnyNotification]:
        return _paginate(self._where(self._is_future), page, page_size)

    async def get_all_future_notifications_from_user(self, user_id: str) -> list[AnyNotification]:
        return self._where(lambda n: self._is_future(n) and self._belongs_to(n, user_id))

    async def get_future_notifications_from_user(
        self,
        user_id: str,
        page: int,
        page_size: int,
    ) -> list[AnyNotification]:
        return _paginate(await self.get_all_future_notifications_from_user(user_id), page, page_size)

    async def get_notifications(self, page: int, page_size: int) -> list[AnyNotification]:
        return _paginate(self._where(lambda n: True), page, page_size)

    async def filter_all_in_app_unread_notifications(self, user_id: str) -> list[AnyNotification]:
        return self._where(lambda n: self._is_unread_in_app(n) and self._belongs_to(n, user_id))

    async def filter_in_app_unread_notifications(
        self,
        user_id: str,
        page: int,
        page_size: int,
    ) -> list[AnyNotification]:
        return _paginate(await self.filter_all_in_app_unread_notifications(user_id), page, page_size)

    async def get_user_email_from_notification(self, notification_id: str) -> str | None:
        stored = self._get_stored(notification_id)
        if stored.kind is NotificationKind.ONE_OFF:
            return stored.email_or_phone
        return self.user_emails.get(stored.user_id)

    # ──────────────────────────────────────────────────────────────
    # Attachments
    # ──────────────────────────────────────────────────────────────

    async def store_attachment_file_record(self, record: AttachmentFileRecord) -> AttachmentFileRecord:
        existing_id = self._file_ids_by_checksum.get(record.checksum)
        if existing_id is not None:
            raise DuplicateChecksumError(record.checksum, existing_file_id=existing_id)
        stored = copy.deepcopy(record)
        self._files[stored.id] = stored
        self._file_ids_by_checksum[stored.checksum] = stored.id
        return copy.deepcopy(stored)

    async def get_attachment_file_record(self, file_id: str) -> AttachmentFileRecord | None:
        record = self._files.get(file_id)
        return copy.deepcopy(record) if record is not None else None

    async def find_attachment_file_by_checksum(self, checksum: str) -> AttachmentFileRecord | None:
        file_id = self._file_ids_by_checksum.get(checksum)
        return await self.get_attachment_file_record(file_id) if file_id is not None else None

    async def delete_attachment_file(self, file_id: str) -> None:
        record = self._files.pop(file_id, None)
        if record is not None:
            self._file_ids_by_checksum.pop(record.checksum, None)

    async def get_orphaned_attachment_files(self) -> list[AttachmentFileRecord]:
        linked = {link.file_id for links in self._links.values() for link in links}
        return [copy.deepcopy(r) for file_id, r in self._files.items() if file_id not in linked]

    async def store_notification_attachments(
        self,
        notification_id: str,
        attachments: list[AttachmentData],
    ) -> list[AttachmentLink]:
        self._get_stored(notification_id)
        for attachment in attachments:
            if attachment.file_id not in self._files:
                raise ReferencedFileNotFoundError(attachment.file_id)

        now = self._now()
        created = [
            AttachmentLink(
                id=str(next(self._link_ids)),
                notification_id=notification_id,
                file_id=attachment.file_id,
                file=copy.deepcopy(self._files[attachment.file_id]),
                description=attachment.description,
                created_at=now,
            )
            for attachment in attachments
        ]
        self._links.setdefault(notification_id, []).extend(created)
        return copy.deepcopy(created)

    async def get_attachments(self, notification_id: str) -> list[AttachmentLink]:
        return copy.deepcopy(self._links.get(notification_id, []))

    async def delete_notification_attachment(self, notification_id: str, attachment_id: str) -> None:
        links = self._links.get(notification_id, [])
        remaining = [link for link in links if link.id != attachment_id]
        if len(remaining) == len(links):
            raise NotFoundException(
                detail=f"Attachment {attachment_id} not found on notification {notification_id}",
                type="notification-attachment-not-found",
                extra={"notification_id": notification_id, "attachment_id": attachment_id},
            )
        self._links[notification_id] = remaining
