"""Unit tests for the delivery adapters."""

from __future__ import annotations

import email
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dispatch_service.core.exceptions import ValidationException
from dispatch_service.core.settings import EmailSettings
from dispatch_service.features.attachments.models import AttachmentUpload
from dispatch_service.features.notifications import (
    InAppNotificationAdapter,
    JinjaTemplateRenderer,
    NotificationStatus,
    NotificationType,
    SmtpEmailAdapter,
)
from dispatch_service.features.notifications.exceptions import (
    BackendNotInjectedError,
    RecipientNotFoundError,
)


@pytest.fixture
def smtp_settings() -> EmailSettings:
    return EmailSettings(
        smtp_host="smtp.test",
        smtp_port=2525,
        smtp_username="mailer",
        smtp_password="secret",
        default_from_email="noreply@dispatch.example.com",
        default_from_name="Dispatch",
    )


@pytest.fixture
def smtp_client():
    """Patch aiosmtplib.SMTP and return the client instance."""
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    client.login = AsyncMock()
    client.send_message = AsyncMock(return_value=({}, "250 OK"))
    with patch("dispatch_service.features.notifications.adapters.email.aiosmtplib.SMTP", return_value=client) as cls:
        client.factory = cls
        yield client


@pytest.mark.unit
class TestSmtpEmailAdapter:
    """Test SmtpEmailAdapter."""

    def test_enqueue_flag_from_settings(self, smtp_settings):
        renderer = JinjaTemplateRenderer()
        queued_settings = smtp_settings.model_copy(update={"enqueue_notifications": True})

        assert SmtpEmailAdapter(renderer, smtp_settings).enqueue_notifications is False
        assert SmtpEmailAdapter(renderer, queued_settings).enqueue_notifications is True
        assert SmtpEmailAdapter(renderer, queued_settings, enqueue_notifications=False).enqueue_notifications is False

    @pytest.mark.asyncio
    async def test_sends_rendered_message(self, smtp_settings, smtp_client, backend, make_notification):
        adapter = SmtpEmailAdapter(JinjaTemplateRenderer(), smtp_settings)
        adapter.inject_backend(backend)
        stored = await backend.persist_notification(make_notification())

        await adapter.send(stored, {"first_name": "Ada", "last_name": "Lovelace"})

        smtp_client.factory.assert_called_once()
        assert smtp_client.factory.call_args.kwargs["hostname"] == "smtp.test"
        smtp_client.login.assert_awaited_once_with("mailer", "secret")
        message = smtp_client.send_message.await_args.args[0]
        assert message["Subject"] == "Hello Ada"
        assert message["To"] == "Ada Lovelace <ada@example.com>"
        assert message["From"] == "Dispatch <noreply@dispatch.example.com>"
        html = message.get_payload()[0].get_payload(decode=True).decode()
        assert "<p>Welcome Ada</p>" in html

    @pytest.mark.asyncio
    async def test_one_off_recipient(self, smtp_settings, smtp_client, make_one_off):
        adapter = SmtpEmailAdapter(JinjaTemplateRenderer(), smtp_settings)
        notification = make_one_off(id="7")

        await adapter.send(notification, {"first_name": "Grace"})

        message = smtp_client.send_message.await_args.args[0]
        assert message["To"] == "Grace Hopper <guest@example.com>"
        # No subject template and no title
        assert message["Subject"] == ""

    @pytest.mark.asyncio
    async def test_attachments_become_mime_parts(
        self, smtp_settings, smtp_client, make_pipeline, make_notification, attachment_store
    ):
        adapter = SmtpEmailAdapter(JinjaTemplateRenderer(), smtp_settings)
        pipeline = make_pipeline([adapter], attachment_store=attachment_store)

        created = await pipeline.create_notification(
            make_notification(attachments=[AttachmentUpload(file=b"%PDF", filename="invoice.pdf")])
        )

        message = email.message_from_bytes(smtp_client.send_message.await_args.args[0].as_bytes())
        parts = [part for part in message.walk() if part.get_filename()]
        assert [part.get_filename() for part in parts] == ["invoice.pdf"]
        assert parts[0].get_content_type() == "application/pdf"
        assert parts[0].get_payload(decode=True) == b"%PDF"
        assert (await pipeline.get_notification(created.id)).adapter_used == "smtp"

    @pytest.mark.asyncio
    async def test_unknown_account_email(self, smtp_settings, smtp_client, backend, make_notification):
        adapter = SmtpEmailAdapter(JinjaTemplateRenderer(), smtp_settings)
        adapter.inject_backend(backend)
        stored = await backend.persist_notification(make_notification(user_id="nobody"))

        with pytest.raises(RecipientNotFoundError):
            await adapter.send(stored, {"first_name": "x"})

        smtp_client.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_account_notification_needs_backend(self, smtp_settings, smtp_client, make_notification):
        adapter = SmtpEmailAdapter(JinjaTemplateRenderer(), smtp_settings)

        with pytest.raises(BackendNotInjectedError):
            await adapter.send(make_notification(id="1"), {"first_name": "x"})

    @pytest.mark.asyncio
    async def test_smtp_failure_marks_failed(
        self, smtp_settings, smtp_client, make_pipeline, make_notification, backend
    ):
        smtp_client.send_message.side_effect = ConnectionError("connection refused")
        pipeline = make_pipeline([SmtpEmailAdapter(JinjaTemplateRenderer(), smtp_settings)])

        created = await pipeline.create_notification(make_notification())

        assert (await backend.get_notification(created.id)).status is NotificationStatus.FAILED


@pytest.mark.unit
class TestInAppNotificationAdapter:
    """Test InAppNotificationAdapter."""

    @pytest.mark.asyncio
    async def test_stores_rendered_content(self, make_pipeline, make_notification, backend):
        pipeline = make_pipeline([InAppNotificationAdapter(JinjaTemplateRenderer())])

        created = await pipeline.create_notification(
            make_notification(notification_type=NotificationType.IN_APP, extra_params={"icon": "bell"})
        )

        stored = await backend.get_notification(created.id)
        assert stored.status is NotificationStatus.SENT
        assert stored.adapter_used == "in_app"
        assert stored.extra_params == {
            "icon": "bell",
            "rendered": {"body": "<p>Welcome Ada</p>", "subject": "Hello Ada"},
        }

    @pytest.mark.asyncio
    async def test_rejects_one_off(self, backend, make_one_off):
        adapter = InAppNotificationAdapter(JinjaTemplateRenderer())
        adapter.inject_backend(backend)

        with pytest.raises(ValidationException):
            await adapter.send(make_one_off(id="1", notification_type=NotificationType.IN_APP), {})


@pytest.mark.unit
class TestRecipientName:
    """Test name resolution shared by adapters."""

    def test_name_from_context(self, make_notification):
        adapter = InAppNotificationAdapter(JinjaTemplateRenderer())

        name = adapter.get_recipient_name(make_notification(), {"first_name": "Ada", "last_name": 3})

        assert name.full_name == "Ada"

    def test_name_from_one_off(self, make_one_off):
        adapter = InAppNotificationAdapter(JinjaTemplateRenderer())

        assert adapter.get_recipient_name(make_one_off(), None).full_name == "Grace Hopper"
