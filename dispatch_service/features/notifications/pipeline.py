"""Notification dispatch pipeline.

Decides when and how a notification is delivered, drives its status
transitions, and coordinates deferred delivery and attachments.

Failure handling has two modes, selected by
``DispatchSettings.raise_error_on_failed_send``:

- lenient: non-fatal problems are logged and the call returns.
- strict: the same problems are raised.

In both modes a failing adapter never stops the remaining adapters, and a
failing notification never stops the rest of a ``send_pending_notifications``
run. Status marking and context storage are best-effort: their failures
are logged and never change the outcome of a send.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from dispatch_service.core.services.base import BaseService
from dispatch_service.core.settings import get_dispatch_settings
from dispatch_service.features.attachments.backend import AttachmentBackend
from dispatch_service.features.attachments.models import AttachmentData
from dispatch_service.features.notifications.exceptions import (
    AdapterNotFoundError,
    AttachmentsNotSupportedError,
    ContextResolutionError,
    NoQueuedAdaptersError,
    NotificationDeliveryError,
    NotificationError,
    NotificationNotFoundError,
    NotificationNotPendingError,
    NotificationNotPersistedError,
    NotificationScheduledInFutureError,
    NotificationStatusConflictError,
    QueueServiceMissingError,
    StoredContextMissingError,
)
from dispatch_service.features.notifications.models import (
    AnyNotification,
    Context,
    NotificationStatus,
    NotificationType,
    OneOffNotification,
)

if TYPE_CHECKING:
    import logging

    from dispatch_service.core.settings.dispatch import DispatchSettings
    from dispatch_service.features.attachments.models import (
        AttachmentFileRecord,
        AttachmentInput,
        ProcessedAttachments,
        StoredAttachment,
    )
    from dispatch_service.features.attachments.store import BaseAttachmentStore
    from dispatch_service.features.notifications.adapters.base import BaseNotificationAdapter
    from dispatch_service.features.notifications.backends.base import NotificationBackend
    from dispatch_service.features.notifications.context import NotificationContextRegistry
    from dispatch_service.features.notifications.queue import NotificationQueueService


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_in_future(moment: datetime | None, now: datetime | None = None) -> bool:
    """Return True when ``moment`` lies after ``now``.

    Naive datetimes are taken to be UTC.
    """
    if moment is None:
        return False
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment > (now or utcnow())


class DispatchPipeline(BaseService):
    """Creates, sends and tracks notifications.

    Args:
        adapters: Delivery adapters; each receives the backend and logger.
        backend: Notification persistence.
        context_registry: Resolves ``context_name`` to a render context.
        queue_service: Receives notification ids for adapters that enqueue.
        attachment_store: Stores attachment files. Requires a backend that
            implements :class:`AttachmentBackend`.
        settings: Pipeline settings; loaded from the environment when omitted.
        logger: Logger shared with the adapters.

    Example:
        pipeline = DispatchPipeline(
            adapters=[SmtpEmailAdapter(JinjaTemplateRenderer("templates"))],
            backend=InMemoryNotificationBackend(),
            context_registry=NotificationContextRegistry({"welcome": welcome_context}),
        )
        await pipeline.create_notification(notification)
    """

    def __init__(
        self,
        adapters: Iterable[BaseNotificationAdapter],
        backend: NotificationBackend,
        context_registry: NotificationContextRegistry,
        queue_service: NotificationQueueService | None = None,
        attachment_store: BaseAttachmentStore | None = None,
        settings: DispatchSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger)
        self.adapters = list(adapters)
        self.backend = backend
        self.context_registry = context_registry
        self.queue_service = queue_service
        self.attachment_store = attachment_store
        self.settings = settings or get_dispatch_settings()

        for adapter in self.adapters:
            adapter.inject_backend(backend)
            adapter.inject_logger(self.logger)

        if (
            attachment_store is not None
            and attachment_store.backend is None
            and isinstance(backend, AttachmentBackend)
        ):
            attachment_store.bind_backend(backend)

    @property
    def raise_on_failure(self) -> bool:
        return self.settings.raise_error_on_failed_send

    def register_queue_service(self, queue_service: NotificationQueueService) -> None:
        """Set the queue service after construction."""
        self.queue_service = queue_service

    # ──────────────────────────────────────────────────────────────
    # Failure handling
    # ──────────────────────────────────────────────────────────────

    def _fail(self, error: NotificationError) -> None:
        """Raise ``error`` in strict mode, log it otherwise."""
        if self.raise_on_failure:
            raise error
        self.logger.error(error.detail, extra={"error_code": error.code, **error.extra})

    async def _best_effort(self, operation: Awaitable[Any], action: str, notification_id: str | None) -> bool:
        """Await a side effect whose failure must not change the send outcome."""
        try:
            await operation
        except NotificationStatusConflictError as error:
            self.logger.warning(
                "Status already changed by another adapter",
                extra={"action": action, "notification_id": notification_id, "actual": error.actual},
            )
            return False
        except Exception:
            self.logger.exception(
                "Best-effort operation failed",
                extra={"action": action, "notification_id": notification_id},
            )
            return False
        return True

    # ──────────────────────────────────────────────────────────────
    # Creation
    # ──────────────────────────────────────────────────────────────

    def _adapters_for(self, notification_type: NotificationType) -> list[BaseNotificationAdapter]:
        return [a for a in self.adapters if a.notification_type == notification_type]

    def _attachment_backend(self) -> AttachmentBackend:
        if self.attachment_store is None:
            raise AttachmentsNotSupportedError("no attachment store configured")
        if not isinstance(self.backend, AttachmentBackend):
            raise AttachmentsNotSupportedError(f"{type(self.backend).__name__} does not store attachments")
        return self.backend

    async def _process_attachments(
        self,
        attachments: list[AttachmentInput],
        notification_id: str | None = None,
    ) -> ProcessedAttachments:
        self._attachment_backend()
        return await self.attachment_store.process_attachments(attachments, notification_id)

    async def create_notification(self, notification: AnyNotification) -> AnyNotification:
        """Persist a notification and send it if it is due.

        Attachments given in ``notification.attachments`` are stored (or
        deduplicated) before the notification is persisted and linked to it
        afterwards.

        Args:
            notification: Notification without an id.

        Returns:
            The persisted notification, as returned by the backend.

        Raises:
            AttachmentsNotSupportedError: Attachments were given but can't be stored.
            ReferencedFileNotFoundError: An attachment reference is unknown.
        """
        processed = None
        if notification.attachments:
            processed = await self._process_attachments(list(notification.attachments))

        created = await self.backend.persist_notification(notification)
        self.logger.info(
            "Notification created",
            extra={
                "notification_id": created.id,
                "notification_type": created.notification_type.value,
                "send_after": created.send_after.isoformat() if created.send_after else None,
            },
        )

        if processed is not None and processed.attachment_data:
            await self._attachment_backend().store_notification_attachments(created.id, processed.attachment_data)

        if is_in_future(created.send_after):
            self._lazy.debug(lambda: f"Notification {created.id} scheduled for {created.send_after}")
            return created

        await self.send(created)
        return created

    async def create_one_off_notification(self, notification: OneOffNotification) -> OneOffNotification:
        """Same as :meth:`create_notification` for recipients without an account."""
        return await self.create_notification(notification)

    # ──────────────────────────────────────────────────────────────
    # Sending
    # ──────────────────────────────────────────────────────────────

    async def _resolve_context(self, notification: AnyNotification) -> Context:
        try:
            return await self.context_registry.resolve(
                notification.context_name,
                notification.context_parameters,
            )
        except Exception as exc:
            raise ContextResolutionError(notification.context_name, notification.id, exc) from exc

    async def _load_stored_attachments(self, notification_id: str) -> list[StoredAttachment]:
        if self.attachment_store is None or not isinstance(self.backend, AttachmentBackend):
            return []
        links = await self.backend.get_attachments(notification_id)
        return [self.attachment_store.to_stored_attachment(link) for link in links]

    async def _deliver(
        self,
        adapter: BaseNotificationAdapter,
        notification: AnyNotification,
        context: Context,
    ) -> NotificationDeliveryError | None:
        """Send through one adapter and record the outcome.

        Returns:
            The delivery error, or None on success.
        """
        try:
            if adapter.supports_attachments and not notification.stored_attachments:
                notification.stored_attachments = await self._load_stored_attachments(notification.id)
            await adapter.send(notification, context)
        except Exception as exc:
            self.logger.exception(
                "Adapter failed to send notification",
                extra={"notification_id": notification.id, "adapter": adapter.key},
            )
            await self._best_effort(
                self.backend.mark_as_failed(notification.id, check_is_pending=True),
                "mark_as_failed",
                notification.id,
            )
            return NotificationDeliveryError(notification.id, adapter.key, exc)

        self.logger.info(
            "Notification sent",
            extra={"notification_id": notification.id, "adapter": adapter.key},
        )
        await self._best_effort(
            self.backend.mark_as_sent(notification.id, check_is_pending=True, adapter_used=adapter.key),
            "mark_as_sent",
            notification.id,
        )
        return None

    async def _enqueue(self, adapter: BaseNotificationAdapter, notification: AnyNotification) -> NotificationError | None:
        if self.queue_service is None:
            error = QueueServiceMissingError(adapter.key, notification.id)
            self.logger.error(error.detail, extra=error.extra)
            return error

        try:
            await self.queue_service.enqueue_notification(notification.id)
        except Exception as exc:
            self.logger.exception(
                "Failed to enqueue notification",
                extra={"notification_id": notification.id, "adapter": adapter.key},
            )
            return NotificationDeliveryError(notification.id, adapter.key, exc)

        self.logger.info(
            "Notification enqueued",
            extra={"notification_id": notification.id, "adapter": adapter.key},
        )
        return None

    async def send(self, notification: AnyNotification) -> None:
        """Deliver a persisted notification through every matching adapter.

        Adapters that enqueue hand the id to the queue service; the others
        send inline with a context that is resolved once (or reused from
        ``context_used``) and shared between them.

        Raises:
            NotificationNotPersistedError: ``notification.id`` is not set.
            AdapterNotFoundError: Strict mode, no adapter for the type.
            NotificationNotPendingError: Strict mode, status is not PENDING_SEND.
            ContextResolutionError: Strict mode, the context could not be generated.
            NotificationError: Strict mode, the first adapter or enqueue
                failure once every adapter was attempted.
        """
        if not notification.id:
            raise NotificationNotPersistedError

        adapters = self._adapters_for(notification.notification_type)
        if not adapters:
            self._fail(AdapterNotFoundError(notification.notification_type.value, notification.id))
            return

        if notification.status is not NotificationStatus.PENDING_SEND:
            self._fail(NotificationNotPendingError(notification.id, notification.status.value))
            return

        context = notification.context_used
        context_resolved = False
        delivered = False
        failures: list[NotificationError] = []

        for adapter in adapters:
            if adapter.enqueue_notifications:
                error = await self._enqueue(adapter, notification)
                if error is not None:
                    failures.append(error)
                continue

            if context is None:
                try:
                    context = await self._resolve_context(notification)
                except ContextResolutionError as error:
                    self._fail(error)
                    return
                context_resolved = True

            error = await self._deliver(adapter, notification, context)
            if error is None:
                delivered = True
            else:
                failures.append(error)

        if delivered and context_resolved:
            await self._best_effort(
                self.backend.store_context_used(notification.id, context),
                "store_context_used",
                notification.id,
            )

        if failures and self.raise_on_failure:
            raise failures[0]

    async def delayed_send(self, notification_id: str) -> None:
        """Deliver a queued notification; called by the queue worker.

        Only adapters that enqueue are used, and they send directly. The
        record may already be SENT or FAILED when an inline adapter of the
        same type ran first; the queued adapters still deliver and their
        conditional status marks lose to the earlier one. Only a CANCELLED
        notification is skipped.

        Raises:
            NoQueuedAdaptersError: Strict mode, no adapter enqueues.
            NotificationNotFoundError: Strict mode, unknown id.
            NotificationNotPendingError: Strict mode, the notification was cancelled.
            ContextResolutionError: Strict mode, the context could not be generated.
            NotificationDeliveryError: Strict mode, first adapter failure.
        """
        queued_adapters = [a for a in self.adapters if a.enqueue_notifications]
        if not queued_adapters:
            self._fail(NoQueuedAdaptersError())
            return

        notification = await self.backend.get_notification(notification_id)
        if notification is None:
            self._fail(NotificationNotFoundError(notification_id))
            return

        adapters = [a for a in queued_adapters if a.notification_type == notification.notification_type]
        if not adapters:
            self._fail(AdapterNotFoundError(notification.notification_type.value, notification_id))
            return

        if notification.status is NotificationStatus.CANCELLED:
            self._fail(NotificationNotPendingError(notification_id, notification.status.value))
            return

        context = notification.context_used
        context_resolved = False
        if context is None:
            try:
                context = await self._resolve_context(notification)
            except ContextResolutionError as error:
                self._fail(error)
                return
            context_resolved = True

        failures: list[NotificationError] = []
        for adapter in adapters:
            error = await self._deliver(adapter, notification, context)
            if error is not None:
                failures.append(error)

        if context_resolved and len(failures) < len(adapters):
            await self._best_effort(
                self.backend.store_context_used(notification_id, context),
                "store_context_used",
                notification_id,
            )

        if failures and self.raise_on_failure:
            raise failures[0]

    async def send_pending_notifications(self) -> int:
        """Send every due PENDING_SEND notification concurrently.

        At most ``max_concurrent_sends`` sends run at once. A failure in one
        send never stops the others; in strict mode the first failure is
        raised after all of them finished.

        Returns:
            Number of notifications attempted.
        """
        pending = await self.backend.get_all_pending_notifications()
        if not pending:
            return 0

        semaphore = asyncio.Semaphore(self.settings.max_concurrent_sends)

        async def send_one(notification: AnyNotification) -> None:
            async with semaphore:
                await self.send(notification)

        results = await asyncio.gather(*(send_one(n) for n in pending), return_exceptions=True)

        errors: list[BaseException] = []
        for notification, result in zip(pending, results, strict=True):
            if isinstance(result, BaseException):
                errors.append(result)
                self.logger.error(
                    "Failed to send pending notification",
                    exc_info=result,
                    extra={"notification_id": notification.id},
                )

        self.logger.info(
            "Pending notifications processed",
            extra={"total": len(pending), "failed": len(errors)},
        )
        if errors and self.raise_on_failure:
            raise errors[0]
        return len(pending)

    # ──────────────────────────────────────────────────────────────
    # Resend and migration
    # ──────────────────────────────────────────────────────────────

    async def resend_notification(
        self,
        notification_id: str,
        use_stored_context: bool = False,
    ) -> AnyNotification | None:
        """Send a copy of an existing notification as a new record.

        The original notification is never modified.

        Args:
            notification_id: Notification to copy.
            use_stored_context: Reuse the original's ``context_used`` instead
                of generating the context again.

        Returns:
            The new notification, or None when the resend was rejected in
            lenient mode.

        Raises:
            NotificationNotFoundError: Strict mode, unknown id.
            NotificationScheduledInFutureError: Strict mode, the original is
                still scheduled.
            StoredContextMissingError: Strict mode, ``use_stored_context``
                without a stored context.
        """
        original = await self.backend.get_notification(notification_id)
        if original is None:
            self._fail(NotificationNotFoundError(notification_id))
            return None

        if is_in_future(original.send_after):
            self._fail(NotificationScheduledInFutureError(notification_id, original.send_after))
            return None

        if use_stored_context and original.context_used is None:
            self._fail(StoredContextMissingError(notification_id))
            return None

        duplicate = dataclasses.replace(
            original,
            id=None,
            status=NotificationStatus.PENDING_SEND,
            send_after=None,
            context_used=original.context_used if use_stored_context else None,
            adapter_used=None,
            sent_at=None,
            read_at=None,
            created_at=None,
            updated_at=None,
            attachments=[],
            stored_attachments=[],
        )
        created = await self.backend.persist_notification(duplicate)

        if isinstance(self.backend, AttachmentBackend):
            links = await self.backend.get_attachments(notification_id)
            if links:
                await self.backend.store_notification_attachments(
                    created.id,
                    [AttachmentData(file_id=link.file_id, description=link.description) for link in links],
                )

        self.logger.info(
            "Notification resent",
            extra={
                "notification_id": created.id,
                "original_notification_id": notification_id,
                "use_stored_context": use_stored_context,
            },
        )
        await self.send(created)
        return created

    async def migrate_to_backend(
        self,
        destination: NotificationBackend,
        batch_size: int | None = None,
    ) -> int:
        """Copy every notification into another backend, page by page.

        Records are persisted without their ids so the destination assigns
        new ones. Statuses are copied as they are.

        Returns:
            Number of notifications copied.
        """
        size = batch_size or self.settings.migration_batch_size
        page = 0
        total = 0
        while True:
            batch = await self.backend.get_notifications(page, size)
            if not batch:
                break
            await destination.bulk_persist_notifications([dataclasses.replace(n, id=None) for n in batch])
            total += len(batch)
            page += 1
            self._lazy.debug(lambda: f"Migrated page {page} ({len(batch)} notifications)")

        self.logger.info("Notifications migrated", extra={"total": total, "batch_size": size})
        return total

    # ──────────────────────────────────────────────────────────────
    # Queries and simple transitions
    # ──────────────────────────────────────────────────────────────

    async def get_notification(self, notification_id: str, for_update: bool = False) -> AnyNotification | None:
        return await self.backend.get_notification(notification_id, for_update=for_update)

    async def update_notification(self, notification_id: str, changes: dict[str, Any]) -> AnyNotification:
        """Apply field changes to a stored notification."""
        return await self.backend.persist_notification_update(notification_id, changes)

    async def cancel_notification(self, notification_id: str) -> None:
        """Cancel a pending notification so it is never sent."""
        await self.backend.cancel_notification(notification_id)
        self.logger.info("Notification cancelled", extra={"notification_id": notification_id})

    async def mark_read(self, notification_id: str, check_is_sent: bool = True) -> AnyNotification:
        """Mark an in-app notification as read."""
        return await self.backend.mark_as_read(notification_id, check_is_sent=check_is_sent)

    async def get_in_app_unread(
        self,
        user_id: str,
        page: int | None = None,
        page_size: int | None = None,
    ) -> list[AnyNotification]:
        """Unread in-app notifications of a user; paged when both page args are given."""
        if page is not None and page_size is not None:
            return await self.backend.filter_in_app_unread_notifications(user_id, page, page_size)
        return await self.backend.filter_all_in_app_unread_notifications(user_id)

    async def get_pending_notifications(self, page: int, page_size: int) -> list[AnyNotification]:
        return await self.backend.get_pending_notifications(page, page_size)

    async def get_all_future_notifications(self) -> list[AnyNotification]:
        return await self.backend.get_all_future_notifications()

    async def get_future_notifications(self, page: int, page_size: int) -> list[AnyNotification]:
        return await self.backend.get_future_notifications(page, page_size)

    async def get_all_future_notifications_from_user(self, user_id: str) -> list[AnyNotification]:
        return await self.backend.get_all_future_notifications_from_user(user_id)

    async def get_future_notifications_from_user(
        self,
        user_id: str,
        page: int,
        page_size: int,
    ) -> list[AnyNotification]:
        return await self.backend.get_future_notifications_from_user(user_id, page, page_size)

    async def get_notification_context(self, context_name: str, parameters: dict[str, Any] | None = None) -> Context:
        """Generate a context without sending anything (previews, debugging)."""
        return await self.context_registry.resolve(context_name, parameters)

    # ──────────────────────────────────────────────────────────────
    # Attachments
    # ──────────────────────────────────────────────────────────────

    async def get_attachments(self, notification_id: str) -> list[StoredAttachment]:
        """Attachments linked to a notification, with live file accessors."""
        self._attachment_backend()
        return await self._load_stored_attachments(notification_id)

    async def delete_notification_attachment(self, notification_id: str, attachment_id: str) -> None:
        """Unlink one attachment from a notification; the file is kept."""
        await self._attachment_backend().delete_notification_attachment(notification_id, attachment_id)

    async def get_orphaned_attachment_files(self) -> list[AttachmentFileRecord]:
        self._attachment_backend()
        return await self.attachment_store.get_orphaned_attachment_files()

    async def delete_orphaned_attachment_files(self) -> list[str]:
        """Delete files no notification links to and return their ids."""
        self._attachment_backend()
        return await self.attachment_store.delete_orphaned_files()


__all__ = ["DispatchPipeline", "is_in_future", "utcnow"]
