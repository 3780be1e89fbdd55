"""Attachment data structures.

Attachment files are content-addressed: one ``AttachmentFileRecord`` exists
per distinct SHA-256 checksum and may be linked to many notifications.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, BinaryIO

# Everything upload_file accepts as the content of a new file.
FileSource = bytes | bytearray | memoryview | BinaryIO | AsyncIterable[bytes] | str | os.PathLike[str]


class AttachmentInputKind(str, Enum):
    """Discriminant for attachment inputs."""

    UPLOAD = "upload"
    REFERENCE = "reference"


@dataclass(frozen=True, kw_only=True)
class AttachmentUpload:
    """A new file to store and attach.

    ``file`` may be raw bytes, a binary file object, an async byte iterator
    or a filesystem path.
    """

    file: FileSource
    filename: str
    content_type: str | None = None
    description: str | None = None
    kind: AttachmentInputKind = field(default=AttachmentInputKind.UPLOAD, init=False)


@dataclass(frozen=True, kw_only=True)
class AttachmentReference:
    """An already stored file, attached by id."""

    file_id: str
    description: str | None = None
    kind: AttachmentInputKind = field(default=AttachmentInputKind.REFERENCE, init=False)


AttachmentInput = AttachmentUpload | AttachmentReference


def is_attachment_reference(attachment: AttachmentInput) -> bool:
    """Return True when the input references an existing file."""
    return attachment.kind is AttachmentInputKind.REFERENCE


@dataclass(kw_only=True)
class AttachmentFileRecord:
    """A stored attachment file, shared by every notification that links it."""

    id: str
    filename: str
    content_type: str
    size: int
    checksum: str
    storage_metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True, kw_only=True)
class AttachmentData:
    """What a notification needs to link a processed attachment."""

    file_id: str
    description: str | None = None


@dataclass(kw_only=True)
class ProcessedAttachments:
    """Result of processing attachment inputs, in input order."""

    file_records: list[AttachmentFileRecord] = field(default_factory=list)
    attachment_data: list[AttachmentData] = field(default_factory=list)


@dataclass(kw_only=True)
class AttachmentLink:
    """Join row between a notification and an attachment file."""

    id: str
    notification_id: str
    file_id: str
    file: AttachmentFileRecord
    description: str | None = None
    created_at: datetime | None = None


class AttachmentFile(ABC):
    """Live accessor for the bytes of a stored attachment."""

    @abstractmethod
    async def read(self) -> bytes:
        """Read the whole file into memory."""

    @abstractmethod
    def stream(self, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        """Iterate over the file contents in chunks."""

    @abstractmethod
    async def url(self, expires_in: int | None = None) -> str:
        """Return a URL the recipient or a transport can fetch the file from."""

    @abstractmethod
    async def delete(self) -> None:
        """Remove the stored bytes."""


@dataclass(kw_only=True)
class StoredAttachment:
    """An attachment linked to a notification, ready for an adapter to use."""

    id: str
    file_id: str
    filename: str
    content_type: str
    size: int
    checksum: str
    file: AttachmentFile
    storage_metadata: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    created_at: datetime | None = None
