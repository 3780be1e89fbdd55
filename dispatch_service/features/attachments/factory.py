"""Build the configured attachment store."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dispatch_service.core.settings import get_storage_settings
from dispatch_service.features.attachments.local import LocalFileAttachmentStore

if TYPE_CHECKING:
    from dispatch_service.core.settings.storage import StorageSettings
    from dispatch_service.features.attachments.backend import AttachmentBackend
    from dispatch_service.features.attachments.store import BaseAttachmentStore


def create_attachment_store(
    settings: StorageSettings | None = None,
    backend: AttachmentBackend | None = None,
) -> BaseAttachmentStore:
    """Create the attachment store selected by ``STORAGE_BACKEND``.

    The S3 store still needs ``await store.startup()`` before use.
    """
    settings = settings or get_storage_settings()
    if settings.is_s3:
        from dispatch_service.features.attachments.s3 import S3AttachmentStore

        return S3AttachmentStore(settings, backend=backend)
    return LocalFileAttachmentStore.from_settings(settings, backend=backend)
