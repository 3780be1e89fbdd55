"""Content-addressed attachment storage for notifications."""

from dispatch_service.features.attachments.backend import AttachmentBackend
from dispatch_service.features.attachments.exceptions import (
    AttachmentError,
    AttachmentFileNotFoundError,
    AttachmentInUseError,
    AttachmentStorageError,
    DuplicateChecksumError,
    InvalidStorageMetadataError,
    ReferencedFileNotFoundError,
)
from dispatch_service.features.attachments.local import LocalAttachmentFile, LocalFileAttachmentStore
from dispatch_service.features.attachments.models import (
    AttachmentData,
    AttachmentFile,
    AttachmentFileRecord,
    AttachmentInput,
    AttachmentInputKind,
    AttachmentLink,
    AttachmentReference,
    AttachmentUpload,
    ProcessedAttachments,
    StoredAttachment,
    is_attachment_reference,
)
from dispatch_service.features.attachments.store import (
    BaseAttachmentStore,
    calculate_checksum,
    detect_content_type,
)

__all__ = [
    "AttachmentBackend",
    "AttachmentData",
    "AttachmentError",
    "AttachmentFile",
    "AttachmentFileNotFoundError",
    "AttachmentFileRecord",
    "AttachmentInUseError",
    "AttachmentInput",
    "AttachmentInputKind",
    "AttachmentLink",
    "AttachmentReference",
    "AttachmentStorageError",
    "AttachmentUpload",
    "BaseAttachmentStore",
    "DuplicateChecksumError",
    "InvalidStorageMetadataError",
    "LocalAttachmentFile",
    "LocalFileAttachmentStore",
    "ProcessedAttachments",
    "ReferencedFileNotFoundError",
    "StoredAttachment",
    "calculate_checksum",
    "detect_content_type",
    "is_attachment_reference",
]
