"""Object store integration for certificate PDFs.

Published certificates live in a single S3-compatible bucket (MinIO in
development) under certificados/{request_id}/{uuid}.pdf. This module wraps
boto3 with SHA-256 integrity metadata on upload and verification on
download; the lifecycle services decide when objects are written or removed.

Example:
    from rdam.services.storage import CertificateStore
    from rdam.core.settings import get_settings

    settings = get_settings()
    store = CertificateStore.from_settings(settings.s3)

    result = store.upload(key, pdf_bytes, content_type="application/pdf")
    data, metadata = store.download(key)
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client

    from rdam.core.config import S3Settings

logger = logging.getLogger(__name__)

CERTIFICATE_PREFIX = "certificados"


def certificate_key(request_id: uuid.UUID) -> str:
    """Fresh object key for a certificate of the given request."""
    return f"{CERTIFICATE_PREFIX}/{request_id}/{uuid.uuid4()}.pdf"


@dataclass(frozen=True)
class UploadResult:
    """Result of an upload operation.

    Attributes:
        key: The object key in the bucket.
        bucket: The bucket name.
        sha256_digest: SHA-256 hex digest of the uploaded content.
        size_bytes: Size of the uploaded content in bytes.
        etag: S3 ETag (usually MD5 of content, quoted).
    """

    key: str
    bucket: str
    sha256_digest: str
    size_bytes: int
    etag: str


@dataclass(frozen=True)
class ObjectMetadata:
    """Metadata for a stored object.

    Attributes:
        key: The object key in the bucket.
        bucket: The bucket name.
        size_bytes: Size of the object in bytes.
        content_type: MIME type of the content.
        sha256_digest: SHA-256 digest if stored in metadata.
        etag: S3 ETag.
        last_modified: Last modification timestamp as ISO string.
    """

    key: str
    bucket: str
    size_bytes: int
    content_type: str
    sha256_digest: str | None
    etag: str
    last_modified: str


class StorageError(Exception):
    """Base exception for storage operations.

    Attributes:
        message: Human-readable error description.
        bucket: The bucket involved in the operation.
        key: The object key involved (if applicable).
        operation: The operation that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        key: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.message = message
        self.bucket = bucket
        self.key = key
        self.operation = operation
        super().__init__(message)


class ObjectNotFoundError(StorageError):
    """Raised when an object does not exist."""


class BucketNotFoundError(StorageError):
    """Raised when a bucket does not exist."""


class IntegrityError(StorageError):
    """Raised when content integrity verification fails."""


class CertificateStore:
    """S3-compatible store for certificate PDFs.

    The client uses synchronous boto3; async callers hop through
    asyncio.to_thread so the event loop is never blocked on the network.
    """

    DIGEST_METADATA_KEY = "sha256-digest"

    def __init__(
        self,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        region: str = "us-east-1",
        *,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        max_retries: int = 3,
        client: Any | None = None,
    ) -> None:
        """Initialize the certificate store.

        Args:
            endpoint_url: S3-compatible endpoint URL (e.g., http://localhost:9000).
            access_key: S3 access key ID.
            secret_key: S3 secret access key.
            bucket: Bucket holding certificates.
            region: AWS region (use us-east-1 for MinIO).
            connect_timeout: Connection timeout in seconds.
            read_timeout: Read timeout in seconds.
            max_retries: Maximum retry attempts for transient failures.
            client: Pre-built boto3 S3 client (tests).
        """
        self._endpoint_url = endpoint_url
        self._region = region
        self.bucket = bucket

        if client is None:
            config = Config(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": max_retries, "mode": "standard"},
                signature_version="s3v4",
            )
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                config=config,
            )
        self._client: S3Client = client

        logger.debug(
            "Initialized CertificateStore for endpoint=%s bucket=%s",
            endpoint_url,
            bucket,
        )

    @classmethod
    def from_settings(cls, settings: S3Settings) -> CertificateStore:
        """Create a store from S3Settings configuration."""
        return cls(
            endpoint_url=settings.endpoint,
            access_key=settings.access_key.get_secret_value(),
            secret_key=settings.secret_key.get_secret_value(),
            bucket=settings.bucket,
            region=settings.region,
        )

    @staticmethod
    def _compute_sha256(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def ensure_bucket(self) -> bool:
        """Ensure the certificate bucket exists, creating it if necessary.

        Returns:
            True if the bucket was created, False if it already existed.

        Raises:
            StorageError: If bucket creation fails.
        """
        try:
            self._client.head_bucket(Bucket=self.bucket)
            logger.debug("Bucket %s already exists", self.bucket)
            return False
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code not in ("404", "NoSuchBucket"):
                raise StorageError(
                    f"Failed to check bucket existence: {e}",
                    bucket=self.bucket,
                    operation="head_bucket",
                ) from e

        try:
            # us-east-1 must not carry a LocationConstraint
            if self._region == "us-east-1":
                self._client.create_bucket(Bucket=self.bucket)
            else:
                self._client.create_bucket(
                    Bucket=self.bucket,
                    CreateBucketConfiguration={"LocationConstraint": self._region},
                )
        except ClientError as e:
            raise StorageError(
                f"Failed to create bucket: {e}",
                bucket=self.bucket,
                operation="create_bucket",
            ) from e
        logger.info("Created bucket: %s", self.bucket)
        return True

    def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/pdf",
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Upload a certificate, storing its SHA-256 digest in object metadata.

        Raises:
            BucketNotFoundError: If the bucket does not exist.
            StorageError: If the upload fails.
        """
        sha256_digest = self._compute_sha256(data)
        upload_metadata = {self.DIGEST_METADATA_KEY: sha256_digest}
        if metadata:
            upload_metadata.update(metadata)

        try:
            response = self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=upload_metadata,
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "NoSuchBucket":
                raise BucketNotFoundError(
                    f"Bucket does not exist: {self.bucket}",
                    bucket=self.bucket,
                    key=key,
                    operation="upload",
                ) from e
            raise StorageError(
                f"Upload failed: {e}",
                bucket=self.bucket,
                key=key,
                operation="upload",
            ) from e

        logger.debug(
            "Uploaded %s/%s (%d bytes, sha256=%s)",
            self.bucket,
            key,
            len(data),
            sha256_digest[:16] + "...",
        )
        return UploadResult(
            key=key,
            bucket=self.bucket,
            sha256_digest=sha256_digest,
            size_bytes=len(data),
            etag=response.get("ETag", ""),
        )

    def download(self, key: str, *, verify_integrity: bool = True) -> tuple[bytes, ObjectMetadata]:
        """Download a certificate and verify it against the stored digest.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            IntegrityError: If digest verification fails.
            StorageError: If the download fails.
        """
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "NoSuchKey":
                raise ObjectNotFoundError(
                    f"Object does not exist: {self.bucket}/{key}",
                    bucket=self.bucket,
                    key=key,
                    operation="download",
                ) from e
            if error_code == "NoSuchBucket":
                raise BucketNotFoundError(
                    f"Bucket does not exist: {self.bucket}",
                    bucket=self.bucket,
                    key=key,
                    operation="download",
                ) from e
            raise StorageError(
                f"Download failed: {e}",
                bucket=self.bucket,
                key=key,
                operation="download",
            ) from e

        data = response["Body"].read()
        stored_digest = response.get("Metadata", {}).get(self.DIGEST_METADATA_KEY)
        last_modified = response.get("LastModified")

        if verify_integrity and stored_digest:
            computed_digest = self._compute_sha256(data)
            if computed_digest != stored_digest:
                raise IntegrityError(
                    f"Content integrity check failed: expected {stored_digest[:16]}..., "
                    f"got {computed_digest[:16]}...",
                    bucket=self.bucket,
                    key=key,
                    operation="download",
                )

        metadata = ObjectMetadata(
            key=key,
            bucket=self.bucket,
            size_bytes=len(data),
            content_type=response.get("ContentType", "application/octet-stream"),
            sha256_digest=stored_digest,
            etag=response.get("ETag", ""),
            last_modified=last_modified.isoformat() if last_modified else "",
        )
        logger.debug("Downloaded %s/%s (%d bytes)", self.bucket, key, len(data))
        return data, metadata

    def delete(self, key: str) -> bool:
        """Delete an object. S3 deletes are idempotent.

        Raises:
            StorageError: If the delete fails.
        """
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise StorageError(
                f"Delete failed: {e}",
                bucket=self.bucket,
                key=key,
                operation="delete",
            ) from e
        logger.debug("Deleted %s/%s", self.bucket, key)
        return True

    def exists(self, key: str) -> bool:
        """Check if an object exists.

        Raises:
            StorageError: If the check fails for reasons other than not found.
        """
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in ("404", "NoSuchKey"):
                return False
            raise StorageError(
                f"Existence check failed: {e}",
                bucket=self.bucket,
                key=key,
                operation="exists",
            ) from e

    def health_check(self) -> dict[str, Any]:
        """Check connectivity to the certificate bucket.

        Raises:
            StorageError: If the bucket cannot be reached.
        """
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            raise StorageError(
                f"Health check failed: {e}",
                bucket=self.bucket,
                operation="health_check",
            ) from e
        return {"healthy": True, "endpoint": self._endpoint_url, "bucket": self.bucket}
