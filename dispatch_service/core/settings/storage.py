"""Attachment storage settings.

Environment variables use STORAGE_ prefix.
Example: STORAGE_BACKEND=s3, STORAGE_BUCKET="attachments"

Supports:
- Local filesystem (default)
- AWS S3 and S3-compatible services (MinIO, LocalStack)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, SecretStr, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ._sanitizers import sanitize_inline_numeric

StorageBackendName = Literal["local", "s3"]


class StorageSettings(BaseSettings):
    """Where attachment bytes are kept."""

    backend: StorageBackendName = Field(
        default="local",
        description="Attachment storage driver: 'local' or 's3'",
    )

    # ──────────────────────────────────────────────────────────────
    # Local filesystem
    # ──────────────────────────────────────────────────────────────

    base_directory: Path = Field(
        default=Path("attachments"),
        description="Directory where the local driver writes attachment files",
    )

    create_directory: bool = Field(
        default=True,
        description="Create base_directory on startup when it does not exist",
    )

    # ──────────────────────────────────────────────────────────────
    # S3-compatible object storage
    # ──────────────────────────────────────────────────────────────

    endpoint: str | None = Field(
        default=None,
        description="S3-compatible endpoint URL (for MinIO/LocalStack). None for AWS S3.",
    )

    bucket: str = Field(
        default="attachments",
        min_length=3,
        max_length=63,
        description="Bucket holding attachment objects",
    )

    region: str = Field(
        default="us-east-1",
        description="AWS region (used for AWS S3 and request signing)",
    )

    access_key: SecretStr | None = Field(default=None, description="S3 access key ID")
    secret_key: SecretStr | None = Field(default=None, description="S3 secret access key")

    use_ssl: bool = Field(default=True, description="Use SSL/TLS for S3 connections")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")

    key_prefix: str = Field(
        default="attachments/",
        description="S3 key prefix for attachment objects",
    )

    presigned_url_expiry_seconds: int = Field(
        default=3600,
        ge=60,
        le=604800,
        description="Presigned URL expiration in seconds (default 1 hour)",
    )

    @field_validator("presigned_url_expiry_seconds", mode="before")
    @classmethod
    def _normalize_numeric(cls, value: Any) -> Any:
        """Allow numeric env vars with inline comments."""
        return sanitize_inline_numeric(value)

    @model_validator(mode="after")
    def _validate_credential_consistency(self) -> StorageSettings:
        """Require both static credentials or neither (IAM role authentication)."""
        has_access_key = self.access_key is not None
        has_secret_key = self.secret_key is not None

        if has_access_key != has_secret_key:
            raise ValueError(
                "Both access_key and secret_key must be provided together when using "
                "static credentials. Provide both or neither (for IAM role authentication)."
            )

        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_s3(self) -> bool:
        """Check if the S3 driver is selected."""
        return self.backend == "s3"

    def get_boto3_config(self) -> dict[str, Any]:
        """Get configuration dict for an aioboto3 S3 client.

        Returns:
            Client keyword arguments. Credentials are only included when set,
            otherwise boto3 falls back to its own credential chain.
        """
        config: dict[str, Any] = {
            "region_name": self.region,
            "use_ssl": self.use_ssl,
            "verify": self.verify_ssl,
        }

        if self.access_key is not None and self.secret_key is not None:
            config["aws_access_key_id"] = self.access_key.get_secret_value()
            config["aws_secret_access_key"] = self.secret_key.get_secret_value()

        if self.endpoint:
            config["endpoint_url"] = self.endpoint

        return config

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )
