"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Usage:
    from dispatch_service.core.settings import get_dispatch_settings

    settings = get_dispatch_settings()

Testing:
    Clear the caches to force a reload after changing the environment:
    clear_all_caches()

    Or construct a model directly:
    settings = DispatchSettings(raise_error_on_failed_send=True)
"""

from __future__ import annotations

from functools import lru_cache

from .dispatch import DispatchSettings
from .email import EmailSettings
from .logs import LoggingSettings
from .storage import StorageSettings
from .tasks import TaskSettings


@lru_cache(maxsize=1)
def get_dispatch_settings() -> DispatchSettings:
    """Get cached dispatch pipeline settings.

    Returns:
        Validated and frozen DispatchSettings instance.
    """
    return DispatchSettings()


@lru_cache(maxsize=1)
def get_email_settings() -> EmailSettings:
    """Get cached email settings."""
    return EmailSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings."""
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """Get cached attachment storage settings."""
    return StorageSettings()


@lru_cache(maxsize=1)
def get_task_settings() -> TaskSettings:
    """Get cached task broker settings."""
    return TaskSettings()


def clear_all_caches() -> None:
    """Clear every cached settings instance.

    Useful in tests that mutate environment variables between cases.
    """
    get_dispatch_settings.cache_clear()
    get_email_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_storage_settings.cache_clear()
    get_task_settings.cache_clear()
