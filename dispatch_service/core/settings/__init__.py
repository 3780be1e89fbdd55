"""Modular Pydantic Settings v2 configuration.

One settings model per domain, each with its own environment prefix:

- DISPATCH_: pipeline behaviour (strict/lenient mode, concurrency)
- STORAGE_: attachment storage driver
- EMAIL_: SMTP adapter
- TASK_: taskiq broker
- LOG_: logging

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .dispatch import DispatchSettings
from .email import EmailSettings
from .loader import (
    clear_all_caches,
    get_dispatch_settings,
    get_email_settings,
    get_logging_settings,
    get_storage_settings,
    get_task_settings,
)
from .logs import LoggingSettings
from .storage import StorageSettings
from .tasks import TaskSettings

__all__ = [
    "DispatchSettings",
    "EmailSettings",
    "LoggingSettings",
    "StorageSettings",
    "TaskSettings",
    "clear_all_caches",
    "get_dispatch_settings",
    "get_email_settings",
    "get_logging_settings",
    "get_storage_settings",
    "get_task_settings",
]
