"""Pytest configuration and shared fixtures.

Organization:
    - Environment: keep tests away from real brokers and SMTP servers
    - Adapter Fixtures: recording adapters standing in for real transports
    - Pipeline Fixtures: backend, context registry and pipeline factories
    - Attachment Fixtures: local attachment store in a temporary directory
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from typing import Any

import pytest

# Ensure tests run without external infrastructure
os.environ.setdefault("TASK_BROKER_URL", "")
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")
os.environ.setdefault("LOG_FILE_ENABLED", "false")

from dispatch_service.core.settings import DispatchSettings, clear_all_caches  # noqa: E402
from dispatch_service.features.attachments import LocalFileAttachmentStore  # noqa: E402
from dispatch_service.features.notifications import (  # noqa: E402
    BaseNotificationAdapter,
    DispatchPipeline,
    InMemoryNotificationBackend,
    Notification,
    NotificationContextRegistry,
    NotificationType,
    OneOffNotification,
    reset_context_registry,
    reset_dispatch_pipeline,
)
from dispatch_service.infra.logging import clear_log_context  # noqa: E402

# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_global_state():
    """Reset cached settings, singletons and log context around each test."""
    clear_all_caches()
    clear_log_context()
    yield
    clear_all_caches()
    clear_log_context()
    reset_context_registry()
    reset_dispatch_pipeline()


# ============================================================================
# Adapter Fixtures
# ============================================================================


class RecordingAdapter(BaseNotificationAdapter):
    """Adapter that records deliveries instead of talking to a transport.

    Args:
        notification_type: Type the adapter delivers.
        key: Value recorded as ``adapter_used``.
        enqueue: Hand notifications to the queue service.
        fail: Raise on every send, or only for the given notification ids.
        attachments: Whether the adapter asks for stored attachments.
        delay: Seconds to sleep inside ``send``.
    """

    def __init__(
        self,
        notification_type: NotificationType = NotificationType.EMAIL,
        *,
        key: str = "recording",
        enqueue: bool = False,
        fail: bool | set[str] = False,
        attachments: bool = False,
        delay: float = 0,
    ) -> None:
        super().__init__(notification_type, enqueue_notifications=enqueue)
        self.key = key
        self.supports_attachments = attachments
        self.fail = fail
        self.delay = delay
        self.sent: list[tuple[Any, dict[str, Any]]] = []
        self.active = 0
        self.max_active = 0

    def _should_fail(self, notification_id: str) -> bool:
        if isinstance(self.fail, set):
            return notification_id in self.fail
        return self.fail

    async def send(self, notification, context):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self._should_fail(notification.id):
                raise RuntimeError("transport unavailable")
            self.sent.append((notification, context))
        finally:
            self.active -= 1


@pytest.fixture
def make_adapter() -> Callable[..., RecordingAdapter]:
    """Factory for recording adapters.

    Example:
        def test_send(make_adapter):
            adapter = make_adapter(NotificationType.SMS, key="sms")
    """
    return RecordingAdapter


@pytest.fixture
def email_adapter(make_adapter) -> RecordingAdapter:
    """Inline EMAIL adapter keyed ``email``."""
    return make_adapter(NotificationType.EMAIL, key="email")


# ============================================================================
# Pipeline Fixtures
# ============================================================================


class CountingContext:
    """Context generator that counts how often it ran."""

    def __init__(self) -> None:
        self.calls = 0

    async def generate(self, params: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        return {"first_name": "Ada", "last_name": "Lovelace", "call": self.calls, **params}


@pytest.fixture
def welcome_context() -> CountingContext:
    return CountingContext()


@pytest.fixture
def context_registry(welcome_context) -> NotificationContextRegistry:
    """Registry with a ``welcome`` context and a ``broken`` one that raises."""

    def broken(params: dict[str, Any]) -> dict[str, Any]:
        raise LookupError("user vanished")

    return NotificationContextRegistry({"welcome": welcome_context, "broken": broken})


@pytest.fixture
def backend() -> InMemoryNotificationBackend:
    return InMemoryNotificationBackend(user_emails={"user-1": "ada@example.com"})


@pytest.fixture
def lenient_settings() -> DispatchSettings:
    return DispatchSettings(raise_error_on_failed_send=False, max_concurrent_sends=2, migration_batch_size=2)


@pytest.fixture
def strict_settings() -> DispatchSettings:
    return DispatchSettings(raise_error_on_failed_send=True, max_concurrent_sends=2, migration_batch_size=2)


@pytest.fixture
def make_pipeline(backend, context_registry, lenient_settings) -> Callable[..., DispatchPipeline]:
    """Factory building a pipeline around the shared backend and registry.

    Keyword arguments override any constructor argument.
    """

    def factory(adapters=(), **overrides: Any) -> DispatchPipeline:
        kwargs: dict[str, Any] = {
            "adapters": list(adapters),
            "backend": backend,
            "context_registry": context_registry,
            "settings": lenient_settings,
        }
        kwargs.update(overrides)
        return DispatchPipeline(**kwargs)

    return factory


@pytest.fixture
def make_notification() -> Callable[..., Notification]:
    """Factory for account notifications addressed to ``user-1``."""

    def factory(**overrides: Any) -> Notification:
        fields: dict[str, Any] = {
            "user_id": "user-1",
            "notification_type": NotificationType.EMAIL,
            "title": "Welcome",
            "subject_template": "Hello {{ first_name }}",
            "body_template": "<p>Welcome {{ first_name }}</p>",
            "context_name": "welcome",
            "context_parameters": {"plan": "pro"},
        }
        fields.update(overrides)
        return Notification(**fields)

    return factory


@pytest.fixture
def make_one_off() -> Callable[..., OneOffNotification]:
    """Factory for one-off notifications to ``guest@example.com``."""

    def factory(**overrides: Any) -> OneOffNotification:
        fields: dict[str, Any] = {
            "email_or_phone": "guest@example.com",
            "first_name": "Grace",
            "last_name": "Hopper",
            "notification_type": NotificationType.EMAIL,
            "body_template": "<p>Hi {{ first_name }}</p>",
            "context_name": "welcome",
        }
        fields.update(overrides)
        return OneOffNotification(**fields)

    return factory


# ============================================================================
# Attachment Fixtures
# ============================================================================


@pytest.fixture
def attachment_store(tmp_path, backend) -> LocalFileAttachmentStore:
    """Local attachment store writing into a temporary directory."""
    return LocalFileAttachmentStore(tmp_path / "attachments", backend=backend)
