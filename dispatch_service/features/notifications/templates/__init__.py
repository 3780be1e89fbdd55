"""Notification template renderers."""

from dispatch_service.features.notifications.templates.renderer import (
    BaseNotificationTemplateRenderer,
    JinjaTemplateRenderer,
    TemplateRenderError,
)

__all__ = ["BaseNotificationTemplateRenderer", "JinjaTemplateRenderer", "TemplateRenderError"]
