"""S3-compatible object storage for raw solicitation documents, using MinIO.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import logging

from minio import Minio
from minio.error import S3Error
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)
from urllib3.exceptions import HTTPError

from services.shared.config import Settings

logger = logging.getLogger(__name__)

# S3 error codes that will not succeed on retry
PERMANENT_ERROR_CODES = {"NoSuchKey", "NoSuchBucket", "AccessDenied"}


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, S3Error):
        return error.code not in PERMANENT_ERROR_CODES
    return isinstance(error, HTTPError)


class StorageError(Exception):
    """Raw document could not be read from storage."""


class DocumentNotFound(StorageError):
    """No object exists for the document reference."""


class StorageService:
    """Reads raw documents from S3-compatible storage."""

    def __init__(self, settings: Settings) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
        """
        self.settings = settings
        self._client: Minio | None = None

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key:
                raise ValueError(
                    "Storage access key not configured. "
                    "Set APP_STORAGE_ACCESS_KEY environment variable."
                )
            if not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage secret key not configured. "
                    "Set APP_STORAGE_SECRET_KEY environment variable."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """True if storage is enabled and credentials are set."""
        if not self.settings.storage_enabled:
            return False

        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """True if the storage bucket is reachable."""
        if not self.is_available():
            return False

        try:
            return self._get_client().bucket_exists(self.settings.storage_bucket)
        except (S3Error, HTTPError) as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def get_document(self, document_ref: str, bucket: str | None = None) -> bytes:
        """Read the raw bytes of a document.

        Args:
            document_ref: Object name in storage
            bucket: Bucket name (defaults to settings.storage_bucket)

        Returns:
            Raw document bytes

        Raises:
            DocumentNotFound: If the object does not exist
            StorageError: If storage is unreachable after retries
        """
        bucket = bucket or self.settings.storage_bucket
        try:
            data = self._read_object(bucket, document_ref)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchBucket"):
                raise DocumentNotFound(f"{bucket}/{document_ref} not found") from e
            raise StorageError(f"S3 error reading {document_ref}: {e.code} - {e.message}") from e
        except HTTPError as e:
            raise StorageError(f"Storage unreachable reading {document_ref}: {e}") from e

        logger.info(f"Read {document_ref} from {bucket} ({len(data)} bytes)")
        return data

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _read_object(self, bucket: str, object_name: str) -> bytes:
        response = self._get_client().get_object(bucket_name=bucket, object_name=object_name)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()
