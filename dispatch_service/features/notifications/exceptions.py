"""Notification dispatch exceptions.

``NotificationNotPersistedError`` signals a caller bug and is raised in
every mode. The remaining pipeline errors are logged and swallowed unless
``DispatchSettings.raise_error_on_failed_send`` is enabled.

Example:
    ```python
    try:
        await pipeline.send(notification)
    except AdapterNotFoundError as e:
        logger.warning(e.detail, extra=e.extra)
    ```
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from dispatch_service.core.exceptions import AppException


class NotificationError(AppException):
    """Base exception for notification dispatch errors.

    Attributes:
        code: Error code identifier for programmatic error handling.
        message: Human-readable error message.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 500,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Initialize notification error.

        Args:
            message: Human-readable error message.
            code: Error code for programmatic handling.
            status_code: HTTP-style status code (default: 500).
            metadata: Additional error context.
        """
        self.code = code
        self.message = message
        super().__init__(
            status_code=status_code,
            detail=message,
            type=code.lower().replace("_", "-"),
            extra=metadata or {},
        )


class NotificationNotPersistedError(NotificationError):
    """A notification without an id was handed to a send operation."""

    def __init__(self, message: str = "Notification must be persisted before it can be sent") -> None:
        super().__init__(message=message, code="NOTIFICATION_NOT_PERSISTED", status_code=422)


class AdapterNotFoundError(NotificationError):
    """No adapter is registered for the notification's type."""

    def __init__(self, notification_type: str, notification_id: str | None = None) -> None:
        self.notification_type = notification_type
        self.notification_id = notification_id
        super().__init__(
            message=f"No adapter found for notification type {notification_type}",
            code="ADAPTER_NOT_FOUND",
            status_code=422,
            metadata={"notification_type": notification_type, "notification_id": notification_id},
        )


class NotificationNotPendingError(NotificationError):
    """The notification is no longer waiting to be sent."""

    def __init__(self, notification_id: str, status: str) -> None:
        self.notification_id = notification_id
        self.status = status
        super().__init__(
            message=f"Notification {notification_id} is {status}, not PENDING_SEND",
            code="NOTIFICATION_NOT_PENDING",
            status_code=409,
            metadata={"notification_id": notification_id, "status": status},
        )


class NotificationStatusConflictError(NotificationError):
    """A conditional status update found the notification in another state."""

    def __init__(self, notification_id: str, expected: str, actual: str) -> None:
        self.notification_id = notification_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"Notification {notification_id} is {actual}, expected {expected}",
            code="NOTIFICATION_STATUS_CONFLICT",
            status_code=409,
            metadata={"notification_id": notification_id, "expected": expected, "actual": actual},
        )


class NotificationNotFoundError(NotificationError):
    """No notification exists with the given id."""

    def __init__(self, notification_id: str) -> None:
        self.notification_id = notification_id
        super().__init__(
            message=f"Notification {notification_id} not found",
            code="NOTIFICATION_NOT_FOUND",
            status_code=404,
            metadata={"notification_id": notification_id},
        )


class NotificationScheduledInFutureError(NotificationError):
    """A notification scheduled for later can't be resent yet."""

    def __init__(self, notification_id: str, send_after: datetime) -> None:
        self.notification_id = notification_id
        self.send_after = send_after
        super().__init__(
            message=f"Notification {notification_id} is scheduled for {send_after.isoformat()}",
            code="NOTIFICATION_SCHEDULED_IN_FUTURE",
            status_code=409,
            metadata={"notification_id": notification_id, "send_after": send_after.isoformat()},
        )


class StoredContextMissingError(NotificationError):
    """Resend with the stored context was requested but none was stored."""

    def __init__(self, notification_id: str) -> None:
        self.notification_id = notification_id
        super().__init__(
            message=f"Notification {notification_id} has no stored context",
            code="STORED_CONTEXT_MISSING",
            status_code=409,
            metadata={"notification_id": notification_id},
        )


class ContextGeneratorNotFoundError(NotificationError):
    """No context generator is registered under the requested name."""

    def __init__(self, context_name: str) -> None:
        self.context_name = context_name
        super().__init__(
            message=f"Context generator {context_name!r} not found",
            code="CONTEXT_GENERATOR_NOT_FOUND",
            status_code=404,
            metadata={"context_name": context_name},
        )


class ContextResolutionError(NotificationError):
    """Generating the render context for a notification failed."""

    def __init__(self, context_name: str, notification_id: str | None, cause: Exception) -> None:
        self.context_name = context_name
        self.notification_id = notification_id
        self.cause = cause
        super().__init__(
            message=f"Failed to resolve context {context_name!r}: {cause}",
            code="CONTEXT_RESOLUTION_FAILED",
            status_code=500,
            metadata={
                "context_name": context_name,
                "notification_id": notification_id,
                "error": str(cause),
            },
        )


class ContextRegistryAlreadyInitializedError(NotificationError):
    """The process-wide context registry was initialized twice."""

    def __init__(self) -> None:
        super().__init__(
            message="Context registry is already initialized",
            code="CONTEXT_REGISTRY_ALREADY_INITIALIZED",
        )


class ContextRegistryNotInitializedError(NotificationError):
    """The process-wide context registry was used before initialization."""

    def __init__(self) -> None:
        super().__init__(
            message="Context registry is not initialized",
            code="CONTEXT_REGISTRY_NOT_INITIALIZED",
        )


class QueueServiceMissingError(NotificationError):
    """An adapter wants to enqueue but no queue service is configured."""

    def __init__(self, adapter_key: str, notification_id: str | None = None) -> None:
        self.adapter_key = adapter_key
        self.notification_id = notification_id
        super().__init__(
            message=f"Adapter {adapter_key} enqueues notifications but no queue service is configured",
            code="QUEUE_SERVICE_MISSING",
            status_code=503,
            metadata={"adapter": adapter_key, "notification_id": notification_id},
        )


class NoQueuedAdaptersError(NotificationError):
    """``delayed_send`` was called but no adapter enqueues notifications."""

    def __init__(self) -> None:
        super().__init__(
            message="No adapter is configured to enqueue notifications",
            code="NO_QUEUED_ADAPTERS",
        )


class NotificationDeliveryError(NotificationError):
    """An adapter failed to deliver a notification."""

    def __init__(self, notification_id: str, adapter_key: str, cause: Exception) -> None:
        self.notification_id = notification_id
        self.adapter_key = adapter_key
        self.cause = cause
        super().__init__(
            message=f"Adapter {adapter_key} failed to send notification {notification_id}: {cause}",
            code="NOTIFICATION_DELIVERY_FAILED",
            status_code=502,
            metadata={"notification_id": notification_id, "adapter": adapter_key, "error": str(cause)},
        )


class AttachmentsNotSupportedError(NotificationError):
    """Attachments were given but no attachment store or capable backend is set."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            message=f"Notification attachments are not supported: {reason}",
            code="ATTACHMENTS_NOT_SUPPORTED",
            status_code=422,
        )


class BackendNotInjectedError(NotificationError):
    """An adapter needed the backend before one was injected."""

    def __init__(self, adapter_key: str) -> None:
        super().__init__(
            message=f"Adapter {adapter_key} has no backend injected",
            code="BACKEND_NOT_INJECTED",
            metadata={"adapter": adapter_key},
        )


class RecipientNotFoundError(NotificationError):
    """No contact address could be determined for a notification."""

    def __init__(self, notification_id: str | None) -> None:
        super().__init__(
            message=f"No recipient address for notification {notification_id}",
            code="RECIPIENT_NOT_FOUND",
            status_code=404,
            metadata={"notification_id": notification_id},
        )
