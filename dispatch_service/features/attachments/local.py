"""Local filesystem attachment store.

Intended for development and single-host deployments. Files are written as
``<base_directory>/<file_id>``; the original filename lives in the record.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dispatch_service.features.attachments.exceptions import (
    AttachmentFileNotFoundError,
    AttachmentStorageError,
    InvalidStorageMetadataError,
)
from dispatch_service.features.attachments.models import AttachmentFile
from dispatch_service.features.attachments.store import BaseAttachmentStore

if TYPE_CHECKING:
    import logging

    from dispatch_service.core.settings.storage import StorageSettings
    from dispatch_service.features.attachments.backend import AttachmentBackend

LOCAL_BACKEND_NAME = "local-filesystem"


def _unlink_if_exists(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


class LocalAttachmentFile(AttachmentFile):
    """Accessor for a file stored on the local filesystem."""

    def __init__(self, path: Path) -> None:
        self.path = path

    async def read(self) -> bytes:
        try:
            return await asyncio.to_thread(self.path.read_bytes)
        except FileNotFoundError as e:
            raise AttachmentFileNotFoundError(
                f"Attachment file {self.path} does not exist",
                metadata={"path": str(self.path)},
            ) from e

    async def stream(self, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        try:
            handle = await asyncio.to_thread(self.path.open, "rb")
        except FileNotFoundError as e:
            raise AttachmentFileNotFoundError(
                f"Attachment file {self.path} does not exist",
                metadata={"path": str(self.path)},
            ) from e
        try:
            while chunk := await asyncio.to_thread(handle.read, chunk_size):
                yield chunk
        finally:
            await asyncio.to_thread(handle.close)

    async def url(self, expires_in: int | None = None) -> str:
        """Return a ``file://`` URL; only meaningful on the same host."""
        return self.path.resolve().as_uri()

    async def delete(self) -> None:
        await asyncio.to_thread(_unlink_if_exists, self.path)


class LocalFileAttachmentStore(BaseAttachmentStore):
    """Attachment store writing files under a base directory.

    Args:
        base_directory: Directory holding attachment files.
        create_directory: Create ``base_directory`` if it does not exist.
        backend: Record persistence.
        logger: Optional logger override.
    """

    def __init__(
        self,
        base_directory: str | Path = "attachments",
        *,
        create_directory: bool = True,
        backend: AttachmentBackend | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(backend=backend, logger=logger)
        self.base_directory = Path(base_directory)
        if create_directory:
            self.base_directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(
        cls,
        settings: StorageSettings,
        backend: AttachmentBackend | None = None,
    ) -> LocalFileAttachmentStore:
        return cls(
            settings.base_directory,
            create_directory=settings.create_directory,
            backend=backend,
        )

    async def _store_bytes(
        self,
        data: bytes,
        *,
        file_id: str,
        filename: str,
        content_type: str,
    ) -> dict[str, Any]:
        path = self.base_directory / file_id
        try:
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            raise AttachmentStorageError(
                f"Failed to write attachment file {path}",
                operation="write",
                metadata={"path": str(path), "error": str(e)},
            ) from e
        return {"path": str(path), "backend": LOCAL_BACKEND_NAME}

    async def _delete_bytes(self, storage_metadata: dict[str, Any]) -> None:
        path = self._path_from_metadata(storage_metadata)
        removed = await asyncio.to_thread(_unlink_if_exists, path)
        if not removed:
            self.logger.debug("Attachment file already gone", extra={"path": str(path)})

    def reconstruct_attachment_file(self, storage_metadata: dict[str, Any]) -> LocalAttachmentFile:
        return LocalAttachmentFile(self._path_from_metadata(storage_metadata))

    @staticmethod
    def _path_from_metadata(storage_metadata: dict[str, Any]) -> Path:
        path = storage_metadata.get("path")
        if not path or not isinstance(path, str):
            raise InvalidStorageMetadataError(
                "Invalid storage metadata: missing path",
                metadata={"storage_metadata": storage_metadata},
            )
        return Path(path)
