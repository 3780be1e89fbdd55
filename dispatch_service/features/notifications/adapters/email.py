"""SMTP email adapter using aiosmtplib."""

from __future__ import annotations

import ssl
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import TYPE_CHECKING

import aiosmtplib

from dispatch_service.core.settings import get_email_settings
from dispatch_service.features.notifications.adapters.base import BaseNotificationAdapter
from dispatch_service.features.notifications.models import NotificationType

if TYPE_CHECKING:
    from dispatch_service.core.settings.email import EmailSettings
    from dispatch_service.features.attachments.models import StoredAttachment
    from dispatch_service.features.notifications.models import AnyNotification, Context
    from dispatch_service.features.notifications.templates.renderer import (
        BaseNotificationTemplateRenderer,
    )


class SmtpEmailAdapter(BaseNotificationAdapter):
    """Sends EMAIL notifications over SMTP.

    The rendered body is sent as HTML; stored attachments are added as MIME
    parts.

    Example:
        adapter = SmtpEmailAdapter(JinjaTemplateRenderer("templates"))
        pipeline = DispatchPipeline(adapters=[adapter], backend=backend, context_registry=registry)
    """

    key = "smtp"
    supports_attachments = True

    def __init__(
        self,
        template_renderer: BaseNotificationTemplateRenderer,
        settings: EmailSettings | None = None,
        enqueue_notifications: bool | None = None,
    ) -> None:
        self.settings = settings or get_email_settings()
        super().__init__(
            NotificationType.EMAIL,
            self.settings.enqueue_notifications if enqueue_notifications is None else enqueue_notifications,
        )
        self.template_renderer = template_renderer

    def _create_ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.settings.validate_certs:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def prepare_attachments(self, attachments: list[StoredAttachment]) -> list[MIMEBase]:
        parts: list[MIMEBase] = []
        for attachment in attachments:
            maintype, _, subtype = attachment.content_type.partition("/")
            part = MIMEBase(maintype or "application", subtype or "octet-stream")
            part.set_payload(await attachment.file.read())
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            parts.append(part)
        return parts

    async def build_message(self, notification: AnyNotification, context: Context) -> MIMEMultipart:
        """Render the notification into a MIME message."""
        rendered = await self.template_renderer.render(notification, context)
        recipient = await self.get_recipient_email(notification)
        name = self.get_recipient_name(notification, context)

        message = MIMEMultipart("mixed")
        message["Subject"] = rendered.subject or notification.title or ""
        message["From"] = formataddr((self.settings.default_from_name, str(self.settings.default_from_email)))
        message["To"] = formataddr((name.full_name, recipient)) if name.full_name else recipient
        message["Date"] = formatdate(localtime=False)
        message["Message-ID"] = make_msgid()
        message.attach(MIMEText(rendered.body, "html", "utf-8"))

        for part in await self.prepare_attachments(notification.stored_attachments):
            message.attach(part)
        return message

    async def send(self, notification: AnyNotification, context: Context) -> None:
        message = await self.build_message(notification, context)

        smtp = aiosmtplib.SMTP(
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            use_tls=self.settings.use_ssl,  # Implicit TLS
            start_tls=self.settings.use_tls,  # STARTTLS
            tls_context=self._create_ssl_context(),
            timeout=self.settings.timeout,
        )
        async with smtp:
            if self.settings.requires_auth:
                await smtp.login(
                    self.settings.smtp_username,
                    self.settings.smtp_password.get_secret_value(),
                )
            errors, _response = await smtp.send_message(message)

        if errors:
            self.logger.warning(
                "SMTP server rejected recipients",
                extra={
                    "notification_id": notification.id,
                    "errors": {k: str(v) for k, v in errors.items()},
                },
            )
        self.logger.info(
            "Email sent",
            extra={
                "notification_id": notification.id,
                "message_id": message["Message-ID"],
                "attachments": len(notification.stored_attachments),
            },
        )
