"""Persistence contract for attachment file records and notification links."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dispatch_service.features.attachments.models import (
        AttachmentData,
        AttachmentFileRecord,
        AttachmentLink,
    )


class AttachmentBackend(ABC):
    """Attachment capability of a notification backend.

    Backends opt in by subclassing; the pipeline checks ``isinstance`` before
    using any of these methods. Implementations must reject a second record
    with an existing checksum by raising
    :class:`~dispatch_service.features.attachments.exceptions.DuplicateChecksumError`.
    """

    @abstractmethod
    async def store_attachment_file_record(self, record: AttachmentFileRecord) -> AttachmentFileRecord:
        """Persist a new file record.

        Raises:
            DuplicateChecksumError: A record with the same checksum exists.
        """

    @abstractmethod
    async def get_attachment_file_record(self, file_id: str) -> AttachmentFileRecord | None:
        """Return the file record with ``file_id`` or None."""

    @abstractmethod
    async def find_attachment_file_by_checksum(self, checksum: str) -> AttachmentFileRecord | None:
        """Return the file record holding content with ``checksum`` or None."""

    @abstractmethod
    async def delete_attachment_file(self, file_id: str) -> None:
        """Delete a file record."""

    @abstractmethod
    async def get_orphaned_attachment_files(self) -> list[AttachmentFileRecord]:
        """Return file records no notification links to."""

    @abstractmethod
    async def store_notification_attachments(
        self,
        notification_id: str,
        attachments: list[AttachmentData],
    ) -> list[AttachmentLink]:
        """Link files to a notification, preserving order."""

    @abstractmethod
    async def get_attachments(self, notification_id: str) -> list[AttachmentLink]:
        """Return the links of a notification with their file records."""

    @abstractmethod
    async def delete_notification_attachment(self, notification_id: str, attachment_id: str) -> None:
        """Remove one link; the file record itself is kept."""
