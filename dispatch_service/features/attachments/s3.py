"""S3-compatible attachment store (AWS S3, MinIO, LocalStack).

Objects are written under ``<key_prefix><file_id>``. Call ``startup()``
before use and ``shutdown()`` when done, or use the store as an async
context manager.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import aioboto3
from botocore.exceptions import ClientError

from dispatch_service.features.attachments.exceptions import (
    AttachmentFileNotFoundError,
    AttachmentStorageError,
    InvalidStorageMetadataError,
)
from dispatch_service.features.attachments.models import AttachmentFile
from dispatch_service.features.attachments.store import BaseAttachmentStore

if TYPE_CHECKING:
    import logging
    from types import TracebackType

    from dispatch_service.core.settings.storage import StorageSettings
    from dispatch_service.features.attachments.backend import AttachmentBackend

S3_BACKEND_NAME = "s3"
_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class S3AttachmentFile(AttachmentFile):
    """Accessor for an attachment stored as an S3 object."""

    def __init__(self, store: S3AttachmentStore, bucket: str, key: str) -> None:
        self._store = store
        self.bucket = bucket
        self.key = key

    async def read(self) -> bytes:
        client = self._store._ensure_client()
        try:
            response = await client.get_object(Bucket=self.bucket, Key=self.key)
            async with response["Body"] as body:
                return bytes(await body.read())
        except ClientError as e:
            raise self._store._map_client_error(e, "read", self.key) from e

    async def stream(self, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        client = self._store._ensure_client()
        try:
            response = await client.get_object(Bucket=self.bucket, Key=self.key)
        except ClientError as e:
            raise self._store._map_client_error(e, "stream", self.key) from e
        async with response["Body"] as body:
            while chunk := await body.read(chunk_size):
                yield chunk

    async def url(self, expires_in: int | None = None) -> str:
        client = self._store._ensure_client()
        expiry = expires_in or self._store.settings.presigned_url_expiry_seconds
        try:
            return await client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": self.key},
                ExpiresIn=expiry,
            )
        except ClientError as e:
            raise self._store._map_client_error(e, "presign", self.key) from e

    async def delete(self) -> None:
        await self._store._delete_bytes({"bucket": self.bucket, "key": self.key})


class S3AttachmentStore(BaseAttachmentStore):
    """Attachment store backed by an S3 bucket.

    Args:
        settings: Storage settings with bucket, prefix and credentials.
        backend: Record persistence.
        logger: Optional logger override.
    """

    def __init__(
        self,
        settings: StorageSettings,
        *,
        backend: AttachmentBackend | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(backend=backend, logger=logger)
        self.settings = settings
        self._session = aioboto3.Session()
        self._client: Any = None
        self._client_context: Any = None

    @property
    def is_ready(self) -> bool:
        return self._client is not None

    async def startup(self) -> None:
        """Open the S3 client."""
        if self._client is not None:
            return

        self.logger.info(
            "Initializing S3 attachment store",
            extra={"bucket": self.settings.bucket, "endpoint": self.settings.endpoint},
        )
        self._client_context = self._session.client("s3", **self.settings.get_boto3_config())
        self._client = await self._client_context.__aenter__()

    async def shutdown(self) -> None:
        """Close the S3 client."""
        if self._client_context is None:
            return
        try:
            await self._client_context.__aexit__(None, None, None)
        finally:
            self._client = None
            self._client_context = None
        self.logger.info("S3 attachment store shut down")

    async def __aenter__(self) -> S3AttachmentStore:
        await self.startup()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    def _ensure_client(self) -> Any:
        if self._client is None:
            raise AttachmentStorageError(
                "S3 attachment store not started. Call startup() first.",
                operation="connect",
            )
        return self._client

    def _map_client_error(self, error: ClientError, operation: str, key: str) -> Exception:
        code = error.response.get("Error", {}).get("Code", "")
        if code in _MISSING_KEY_CODES:
            return AttachmentFileNotFoundError(
                f"Attachment object {key} does not exist",
                metadata={"bucket": self.settings.bucket, "key": key},
            )
        return AttachmentStorageError(
            f"S3 {operation} failed for {key}: {code or error}",
            operation=operation,
            metadata={"bucket": self.settings.bucket, "key": key, "error_code": code},
        )

    async def _store_bytes(
        self,
        data: bytes,
        *,
        file_id: str,
        filename: str,
        content_type: str,
    ) -> dict[str, Any]:
        client = self._ensure_client()
        key = f"{self.settings.key_prefix}{file_id}"
        try:
            await client.put_object(
                Bucket=self.settings.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ContentDisposition=f'attachment; filename="{filename}"',
            )
        except ClientError as e:
            raise self._map_client_error(e, "upload", key) from e
        return {"bucket": self.settings.bucket, "key": key, "backend": S3_BACKEND_NAME}

    async def _delete_bytes(self, storage_metadata: dict[str, Any]) -> None:
        bucket, key = self._location(storage_metadata)
        client = self._ensure_client()
        try:
            # S3 deletes are idempotent; a missing key is not an error
            await client.delete_object(Bucket=bucket, Key=key)
        except ClientError as e:
            raise self._map_client_error(e, "delete", key) from e

    def reconstruct_attachment_file(self, storage_metadata: dict[str, Any]) -> S3AttachmentFile:
        bucket, key = self._location(storage_metadata)
        return S3AttachmentFile(self, bucket, key)

    def _location(self, storage_metadata: dict[str, Any]) -> tuple[str, str]:
        key = storage_metadata.get("key")
        if not key or not isinstance(key, str):
            raise InvalidStorageMetadataError(
                "Invalid storage metadata: missing key",
                metadata={"storage_metadata": storage_metadata},
            )
        return storage_metadata.get("bucket") or self.settings.bucket, key
