"""Attachment-specific exceptions.

Example:
    ```python
    try:
        processed = await store.process_attachments(inputs, notification_id)
    except ReferencedFileNotFoundError as e:
        logger.warning("Unknown attachment", extra=e.extra)
    ```
"""

from __future__ import annotations

from typing import Any

from dispatch_service.core.exceptions import AppException


class AttachmentError(AppException):
    """Base exception for attachment errors.

    Attributes:
        code: Error code identifier for programmatic error handling.
        message: Human-readable error message.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 500,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Initialize attachment error.

        Args:
            message: Human-readable error message.
            code: Error code for programmatic handling.
            status_code: HTTP-style status code (default: 500).
            metadata: Additional error context.
        """
        self.code = code
        self.message = message
        super().__init__(
            status_code=status_code,
            detail=message,
            type=code.lower().replace("_", "-"),
            extra=metadata or {},
        )


class ReferencedFileNotFoundError(AttachmentError):
    """An attachment reference points at a file id that does not exist."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(
            message=f"Referenced file {file_id} not found",
            code="REFERENCED_FILE_NOT_FOUND",
            status_code=404,
            metadata={"file_id": file_id},
        )


class AttachmentFileNotFoundError(AttachmentError):
    """The stored bytes or record of an attachment file are missing."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="ATTACHMENT_FILE_NOT_FOUND",
            status_code=404,
            metadata=metadata,
        )


class AttachmentInUseError(AttachmentError):
    """A file that is still linked to notifications cannot be deleted."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(
            message=f"Attachment file {file_id} is still referenced by notifications",
            code="ATTACHMENT_IN_USE",
            status_code=409,
            metadata={"file_id": file_id},
        )


class DuplicateChecksumError(AttachmentError):
    """A file record with the same checksum already exists.

    Raised by attachment backends that enforce checksum uniqueness; the
    attachment store recovers by reusing the existing record.
    """

    def __init__(self, checksum: str, existing_file_id: str | None = None) -> None:
        self.checksum = checksum
        self.existing_file_id = existing_file_id
        super().__init__(
            message=f"Attachment file with checksum {checksum} already exists",
            code="DUPLICATE_CHECKSUM",
            status_code=409,
            metadata={"checksum": checksum, "existing_file_id": existing_file_id},
        )


class InvalidStorageMetadataError(AttachmentError):
    """Storage metadata cannot be turned back into a file accessor."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="INVALID_STORAGE_METADATA",
            status_code=422,
            metadata=metadata,
        )


class AttachmentStorageError(AttachmentError):
    """The storage driver failed to write, read or delete bytes."""

    def __init__(
        self,
        message: str,
        operation: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(
            message=message,
            code="ATTACHMENT_STORAGE_ERROR",
            status_code=502,
            metadata={"operation": operation, **(metadata or {})},
        )
