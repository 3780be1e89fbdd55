"""Template rendering for notification subjects and bodies."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import FileSystemLoader, StrictUndefined, TemplateError, select_autoescape
from jinja2.sandbox import SandboxedEnvironment

from dispatch_service.features.notifications.exceptions import NotificationError
from dispatch_service.features.notifications.models import RenderedNotification
from dispatch_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from dispatch_service.features.notifications.models import AnyNotification, Context


class TemplateRenderError(NotificationError):
    """Raised when a notification template fails to render."""

    def __init__(self, message: str, template_name: str | None = None) -> None:
        self.template_name = template_name
        super().__init__(
            message=message,
            code="TEMPLATE_RENDER_FAILED",
            metadata={"template_name": template_name},
        )


class BaseNotificationTemplateRenderer(ABC):
    """Turns a notification and its context into deliverable text."""

    @abstractmethod
    async def render(self, notification: AnyNotification, context: Context) -> RenderedNotification:
        """Render subject and body.

        Raises:
            TemplateRenderError: A template is missing or invalid.
        """


class JinjaTemplateRenderer(BaseNotificationTemplateRenderer):
    """Jinja2 renderer using a sandboxed environment.

    With ``template_dir`` the notification's ``subject_template`` and
    ``body_template`` are template paths relative to that directory.
    Without it they are treated as inline template source. Undefined
    variables raise instead of rendering as empty strings.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self._lazy = get_lazy_logger(self.__class__.__name__)
        self._from_files = template_dir is not None
        self._env = SandboxedEnvironment(
            loader=FileSystemLoader(str(template_dir)) if template_dir is not None else None,
            autoescape=select_autoescape(
                enabled_extensions=("html", "htm", "xml"),
                default_for_string=False,
            ),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["json"] = json.dumps

    def _render_one(self, template: str, context: dict[str, Any]) -> str:
        try:
            if self._from_files:
                compiled = self._env.get_template(template)
            else:
                compiled = self._env.from_string(template)
            return compiled.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render template: {exc}", template_name=template) from exc

    async def render(self, notification: AnyNotification, context: Context) -> RenderedNotification:
        body = self._render_one(notification.body_template, context)
        subject = None
        if notification.subject_template:
            subject = self._render_one(notification.subject_template, context).strip()

        self._lazy.debug(
            lambda: f"Rendered notification {notification.id} ({len(body)} chars)",
        )
        return RenderedNotification(subject=subject, body=body)
