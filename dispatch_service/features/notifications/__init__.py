"""Notification dispatch.

Usage:
    from dispatch_service.features.notifications import (
        DispatchPipeline,
        InMemoryNotificationBackend,
        Notification,
        NotificationContextRegistry,
        NotificationType,
        SmtpEmailAdapter,
        JinjaTemplateRenderer,
    )

    pipeline = DispatchPipeline(
        adapters=[SmtpEmailAdapter(JinjaTemplateRenderer("templates"))],
        backend=InMemoryNotificationBackend(),
        context_registry=NotificationContextRegistry({"welcome": welcome_context}),
    )
    await pipeline.create_notification(
        Notification(
            user_id="42",
            notification_type=NotificationType.EMAIL,
            body_template="welcome.html",
            context_name="welcome",
        )
    )
"""

from dispatch_service.features.notifications.adapters import (
    BaseNotificationAdapter,
    InAppNotificationAdapter,
    SmtpEmailAdapter,
)
from dispatch_service.features.notifications.backends import (
    InMemoryNotificationBackend,
    NotificationBackend,
)
from dispatch_service.features.notifications.context import (
    NotificationContextRegistry,
    get_context_registry,
    initialize_context_registry,
    reset_context_registry,
)
from dispatch_service.features.notifications.dependencies import (
    configure_dispatch_pipeline,
    get_dispatch_pipeline,
    reset_dispatch_pipeline,
)
from dispatch_service.features.notifications.exceptions import (
    AdapterNotFoundError,
    AttachmentsNotSupportedError,
    ContextGeneratorNotFoundError,
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
    Notification,
    NotificationKind,
    NotificationStatus,
    NotificationType,
    OneOffNotification,
    RenderedNotification,
    is_one_off_notification,
)
from dispatch_service.features.notifications.pipeline import DispatchPipeline
from dispatch_service.features.notifications.queue import (
    NotificationQueueService,
    TaskiqNotificationQueueService,
)
from dispatch_service.features.notifications.templates import (
    BaseNotificationTemplateRenderer,
    JinjaTemplateRenderer,
    TemplateRenderError,
)

__all__ = [
    "AdapterNotFoundError",
    "AnyNotification",
    "AttachmentsNotSupportedError",
    "BaseNotificationAdapter",
    "BaseNotificationTemplateRenderer",
    "Context",
    "ContextGeneratorNotFoundError",
    "ContextResolutionError",
    "DispatchPipeline",
    "InAppNotificationAdapter",
    "InMemoryNotificationBackend",
    "JinjaTemplateRenderer",
    "NoQueuedAdaptersError",
    "Notification",
    "NotificationBackend",
    "NotificationContextRegistry",
    "NotificationDeliveryError",
    "NotificationError",
    "NotificationKind",
    "NotificationNotFoundError",
    "NotificationNotPendingError",
    "NotificationNotPersistedError",
    "NotificationQueueService",
    "NotificationScheduledInFutureError",
    "NotificationStatus",
    "NotificationStatusConflictError",
    "NotificationType",
    "OneOffNotification",
    "QueueServiceMissingError",
    "RenderedNotification",
    "SmtpEmailAdapter",
    "StoredContextMissingError",
    "TaskiqNotificationQueueService",
    "TemplateRenderError",
    "configure_dispatch_pipeline",
    "get_context_registry",
    "get_dispatch_pipeline",
    "initialize_context_registry",
    "is_one_off_notification",
    "reset_context_registry",
    "reset_dispatch_pipeline",
]
