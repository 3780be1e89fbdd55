"""Content-addressed attachment storage.

``BaseAttachmentStore`` owns everything that does not depend on where bytes
live: input normalization, SHA-256 checksums, content type detection,
deduplication and record bookkeeping. Drivers only implement how bytes are
written, removed and reopened.
"""

from __future__ import annotations

import asyncio
import hashlib
import mimetypes
import os
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dispatch_service.core.exceptions import ValidationException
from dispatch_service.core.services.base import BaseService
from dispatch_service.features.attachments.exceptions import (
    AttachmentFileNotFoundError,
    AttachmentInUseError,
    DuplicateChecksumError,
    ReferencedFileNotFoundError,
)
from dispatch_service.features.attachments.models import (
    AttachmentData,
    AttachmentFile,
    AttachmentFileRecord,
    AttachmentInput,
    AttachmentLink,
    ProcessedAttachments,
    StoredAttachment,
    is_attachment_reference,
)

if TYPE_CHECKING:
    import logging

    from dispatch_service.features.attachments.backend import AttachmentBackend
    from dispatch_service.features.attachments.models import FileSource

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def calculate_checksum(data: bytes) -> str:
    """Return the hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def detect_content_type(filename: str) -> str:
    """Guess a MIME type from the filename extension."""
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


def sanitize_filename(filename: str) -> str:
    """Strip directory components so a filename can't escape its folder."""
    name = os.path.basename(filename.replace("\\", "/")).strip()
    if name in {"", ".", ".."}:
        return "attachment"
    return name


async def file_to_bytes(file: FileSource) -> bytes:
    """Read any supported file source into memory.

    Args:
        file: Raw bytes, a binary file object, an async byte iterator or a
            filesystem path.

    Returns:
        The file contents.

    Raises:
        ValidationException: The source type is not supported.
    """
    if isinstance(file, bytes):
        return file
    if isinstance(file, (bytearray, memoryview)):
        return bytes(file)
    if isinstance(file, (str, os.PathLike)):
        return await asyncio.to_thread(Path(file).read_bytes)
    if isinstance(file, AsyncIterable):
        chunks = [bytes(chunk) async for chunk in file]
        return b"".join(chunks)
    if hasattr(file, "read"):
        data = await asyncio.to_thread(file.read)
        if isinstance(data, str):
            raise ValidationException(
                detail="Attachment file objects must be opened in binary mode",
                type="unsupported-file-source",
            )
        return bytes(data)
    raise ValidationException(
        detail=f"Unsupported attachment file source: {type(file).__name__}",
        type="unsupported-file-source",
        extra={"source_type": type(file).__name__},
    )


class BaseAttachmentStore(BaseService, ABC):
    """Stores attachment files once per distinct content.

    Args:
        backend: Persistence for file records. Without one, files are still
            written but can't be looked up, deduplicated or deleted by id.
        logger: Optional logger override.
    """

    def __init__(
        self,
        backend: AttachmentBackend | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger)
        self.backend = backend

    def bind_backend(self, backend: AttachmentBackend) -> None:
        """Attach the record backend after construction."""
        self.backend = backend

    # ──────────────────────────────────────────────────────────────
    # Driver hooks
    # ──────────────────────────────────────────────────────────────

    @abstractmethod
    async def _store_bytes(
        self,
        data: bytes,
        *,
        file_id: str,
        filename: str,
        content_type: str,
    ) -> dict[str, Any]:
        """Write bytes and return the storage metadata needed to find them again."""

    @abstractmethod
    async def _delete_bytes(self, storage_metadata: dict[str, Any]) -> None:
        """Remove stored bytes. Missing bytes count as already deleted."""

    @abstractmethod
    def reconstruct_attachment_file(self, storage_metadata: dict[str, Any]) -> AttachmentFile:
        """Rebuild a live file accessor from stored metadata.

        Raises:
            InvalidStorageMetadataError: The metadata does not belong to this driver.
        """

    # ──────────────────────────────────────────────────────────────
    # Records
    # ──────────────────────────────────────────────────────────────

    async def get_file(self, file_id: str) -> AttachmentFileRecord | None:
        """Return the record for ``file_id`` or None."""
        if self.backend is None:
            return None
        return await self.backend.get_attachment_file_record(file_id)

    async def find_file_by_checksum(self, checksum: str) -> AttachmentFileRecord | None:
        """Return the record holding content with ``checksum`` or None."""
        if self.backend is None:
            return None
        return await self.backend.find_attachment_file_by_checksum(checksum)

    async def upload_file(
        self,
        file: FileSource,
        filename: str,
        content_type: str | None = None,
    ) -> AttachmentFileRecord:
        """Store a file and return its record.

        Args:
            file: Content to store.
            filename: Original filename; directory parts are dropped.
            content_type: MIME type. Detected from the filename when omitted.

        Returns:
            The new record, or the existing record when the backend already
            holds identical content.
        """
        data = await file_to_bytes(file)
        return await self._store_new_file(data, filename, content_type, calculate_checksum(data))

    async def _store_new_file(
        self,
        data: bytes,
        filename: str,
        content_type: str | None,
        checksum: str,
    ) -> AttachmentFileRecord:
        file_id = uuid.uuid4().hex
        safe_name = sanitize_filename(filename)
        resolved_type = content_type or detect_content_type(safe_name)

        storage_metadata = await self._store_bytes(
            data,
            file_id=file_id,
            filename=safe_name,
            content_type=resolved_type,
        )

        now = datetime.now(UTC)
        record = AttachmentFileRecord(
            id=file_id,
            filename=safe_name,
            content_type=resolved_type,
            size=len(data),
            checksum=checksum,
            storage_metadata=storage_metadata,
            created_at=now,
            updated_at=now,
        )

        if self.backend is None:
            return record

        try:
            record = await self.backend.store_attachment_file_record(record)
        except DuplicateChecksumError:
            # Lost a race with a concurrent upload of the same content
            await self._delete_bytes(storage_metadata)
            existing = await self.backend.find_attachment_file_by_checksum(checksum)
            if existing is None:
                raise
            self.logger.info(
                "Reusing concurrently stored attachment file",
                extra={"file_id": existing.id, "checksum": checksum},
            )
            return existing

        self.logger.info(
            "Stored attachment file",
            extra={
                "file_id": record.id,
                "attachment_filename": record.filename,
                "size": record.size,
                "checksum": checksum,
            },
        )
        return record

    async def process_attachments(
        self,
        attachments: list[AttachmentInput],
        notification_id: str | None = None,
    ) -> ProcessedAttachments:
        """Resolve attachment inputs to file records.

        References must point at existing files. Uploads reuse any record
        with the same checksum and are stored only when the content is new.
        Inputs are handled one at a time, so two uploads of identical bytes
        in the same call share a single record.

        Args:
            attachments: Uploads and references, in the order to attach them.
            notification_id: Notification the attachments are for (logging only).

        Returns:
            File records and link data, both in input order.

        Raises:
            ReferencedFileNotFoundError: A reference points at an unknown file.
        """
        processed = ProcessedAttachments()

        for attachment in attachments:
            if is_attachment_reference(attachment):
                record = await self.get_file(attachment.file_id)
                if record is None:
                    raise ReferencedFileNotFoundError(attachment.file_id)
            else:
                data = await file_to_bytes(attachment.file)
                checksum = calculate_checksum(data)
                record = await self.find_file_by_checksum(checksum)
                if record is None:
                    record = await self._store_new_file(
                        data,
                        attachment.filename,
                        attachment.content_type,
                        checksum,
                    )
                else:
                    self._lazy.debug(
                        lambda: f"Deduplicated attachment {attachment.filename} to file {record.id}",
                        extra={"notification_id": notification_id},
                    )

            processed.file_records.append(record)
            processed.attachment_data.append(
                AttachmentData(file_id=record.id, description=attachment.description)
            )

        return processed

    async def get_orphaned_attachment_files(self) -> list[AttachmentFileRecord]:
        """Return file records no notification links to."""
        if self.backend is None:
            return []
        return await self.backend.get_orphaned_attachment_files()

    async def delete_file(self, file_id: str) -> None:
        """Delete an orphaned file's bytes and record.

        Raises:
            AttachmentFileNotFoundError: No record exists for ``file_id``.
            AttachmentInUseError: A notification still links to the file.
        """
        record = await self.get_file(file_id)
        if record is None:
            raise AttachmentFileNotFoundError(
                f"Attachment file {file_id} not found",
                metadata={"file_id": file_id},
            )

        orphans = await self.get_orphaned_attachment_files()
        if file_id not in {orphan.id for orphan in orphans}:
            raise AttachmentInUseError(file_id)

        await self._delete_bytes(record.storage_metadata)
        if self.backend is not None:
            await self.backend.delete_attachment_file(file_id)
        self.logger.info("Deleted attachment file", extra={"file_id": file_id})

    async def delete_orphaned_files(self) -> list[str]:
        """Delete every orphaned file and return their ids."""
        deleted: list[str] = []
        for record in await self.get_orphaned_attachment_files():
            await self._delete_bytes(record.storage_metadata)
            if self.backend is not None:
                await self.backend.delete_attachment_file(record.id)
            deleted.append(record.id)

        if deleted:
            self.logger.info("Deleted orphaned attachment files", extra={"count": len(deleted)})
        return deleted

    def to_stored_attachment(self, link: AttachmentLink) -> StoredAttachment:
        """Join a notification link with a live accessor for its file."""
        record = link.file
        return StoredAttachment(
            id=link.id,
            file_id=record.id,
            filename=record.filename,
            content_type=record.content_type,
            size=record.size,
            checksum=record.checksum,
            file=self.reconstruct_attachment_file(record.storage_metadata),
            storage_metadata=record.storage_metadata,
            description=link.description,
            created_at=link.created_at,
        )
