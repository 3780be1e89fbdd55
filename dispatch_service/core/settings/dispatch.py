"""Notification dispatch pipeline settings.

Environment variables use DISPATCH_ prefix.
Example: DISPATCH_RAISE_ERROR_ON_FAILED_SEND=true
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ._sanitizers import sanitize_inline_numeric


class DispatchSettings(BaseSettings):
    """Dispatch pipeline behaviour.

    ``raise_error_on_failed_send`` selects between the two failure modes:

    - lenient (default): non-fatal send problems are logged and the call
      returns normally.
    - strict: the same problems are raised to the caller.

    Precondition violations such as sending an unpersisted notification
    raise in both modes.
    """

    raise_error_on_failed_send: bool = Field(
        default=False,
        description="Raise instead of logging when a notification cannot be sent",
    )

    max_concurrent_sends: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum notifications sent concurrently by send_pending_notifications",
    )

    migration_batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Page size used when migrating notifications between backends",
    )

    template_dir: str = Field(
        default="templates",
        description="Directory holding notification templates for the Jinja renderer",
    )

    @field_validator("max_concurrent_sends", "migration_batch_size", mode="before")
    @classmethod
    def _normalize_numeric(cls, value: Any) -> Any:
        """Allow numeric env vars with inline comments."""
        return sanitize_inline_numeric(value)

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
