"""Unit tests for StorageService (MinIO/S3-compatible storage).

Tests raw document reads with mocked MinIO client.
"""

from unittest.mock import MagicMock, patch

import pytest
from minio.error import S3Error
from urllib3.exceptions import ProtocolError

from services.shared.config import Settings
from services.storage.service import (
    DocumentNotFound,
    StorageError,
    StorageService,
    _is_retryable,
)


def make_s3_error(code: str, status: int = 404) -> S3Error:
    return S3Error(
        code=code,
        message=f"{code} error",
        resource="/test-documents/emails/abc.eml",
        request_id="12345",
        host_id="host",
        response=MagicMock(status=status, data=b""),
    )


@pytest.fixture
def storage_settings() -> Settings:
    """Create test settings with storage enabled."""
    return Settings(
        _env_file=None,
        storage_enabled=True,
        storage_endpoint="localhost:9000",
        storage_access_key="test-access-key",
        storage_secret_key="test-secret-key",
        storage_bucket="test-documents",
        storage_secure=False,
    )


@pytest.fixture
def disabled_storage_settings() -> Settings:
    """Create test settings with storage disabled."""
    return Settings(_env_file=None, storage_enabled=False)


@pytest.fixture
def mock_minio_client() -> MagicMock:
    """Create mock MinIO client."""
    mock = MagicMock()
    mock.bucket_exists.return_value = True
    return mock


class TestStorageServiceAvailability:
    """Test storage service availability checks."""

    def test_is_available_when_enabled_and_configured(self, storage_settings: Settings) -> None:
        """Should return True when storage is enabled and credentials are set."""
        service = StorageService(storage_settings)
        assert service.is_available() is True

    def test_is_not_available_when_disabled(self, disabled_storage_settings: Settings) -> None:
        """Should return False when storage is disabled."""
        service = StorageService(disabled_storage_settings)
        assert service.is_available() is False

    def test_is_not_available_without_access_key(self) -> None:
        """Should return False when access key is missing."""
        settings = Settings(
            _env_file=None,
            storage_enabled=True,
            storage_access_key="",
            storage_secret_key="secret",
        )
        service = StorageService(settings)
        assert service.is_available() is False

    def test_client_requires_credentials(self) -> None:
        """Creating a client without credentials fails loudly."""
        service = StorageService(Settings(_env_file=None, storage_enabled=True))

        with pytest.raises(ValueError, match="APP_STORAGE_ACCESS_KEY"):
            service._get_client()


class TestStorageServiceHealthCheck:
    """Test storage service health checks."""

    def test_health_check_success(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        """Should return True when the bucket is reachable."""
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            assert service.health_check() is True

        mock_minio_client.bucket_exists.assert_called_once_with("test-documents")

    def test_health_check_failure(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        """Should return False when MinIO rejects the request."""
        mock_minio_client.bucket_exists.side_effect = make_s3_error("AccessDenied", 403)
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            assert service.health_check() is False

    def test_health_check_when_disabled(self, disabled_storage_settings: Settings) -> None:
        """Should return False when storage is disabled."""
        service = StorageService(disabled_storage_settings)
        assert service.health_check() is False


class TestStorageServiceGetDocument:
    """Test raw document reads."""

    def test_get_document_success(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        """Should return the object bytes and release the connection."""
        response = MagicMock()
        response.read.return_value = b"Subject: RFQ\r\n\r\nbody"
        mock_minio_client.get_object.return_value = response
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            data = service.get_document("emails/abc.eml")

        assert data == b"Subject: RFQ\r\n\r\nbody"
        mock_minio_client.get_object.assert_called_once_with(
            bucket_name="test-documents", object_name="emails/abc.eml"
        )
        response.close.assert_called_once()
        response.release_conn.assert_called_once()

    def test_get_document_other_bucket(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        """An explicit bucket overrides the configured one."""
        mock_minio_client.get_object.return_value.read.return_value = b"raw"
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            service.get_document("abc.eml", bucket="archive")

        assert mock_minio_client.get_object.call_args.kwargs["bucket_name"] == "archive"

    def test_missing_object(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        """NoSuchKey maps to DocumentNotFound without retrying."""
        mock_minio_client.get_object.side_effect = make_s3_error("NoSuchKey")
        service = StorageService(storage_settings)

        with (
            patch.object(service, "_get_client", return_value=mock_minio_client),
            pytest.raises(DocumentNotFound, match="test-documents/emails/abc.eml"),
        ):
            service.get_document("emails/abc.eml")

        assert mock_minio_client.get_object.call_count == 1

    def test_access_denied(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        """Other S3 errors map to StorageError."""
        mock_minio_client.get_object.side_effect = make_s3_error("AccessDenied", 403)
        service = StorageService(storage_settings)

        with (
            patch.object(service, "_get_client", return_value=mock_minio_client),
            pytest.raises(StorageError, match="S3 error reading emails/abc.eml: AccessDenied"),
        ):
            service.get_document("emails/abc.eml")

        assert mock_minio_client.get_object.call_count == 1

    def test_connection_errors_retried(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        """Transport errors are retried, then surface as StorageError."""
        mock_minio_client.get_object.side_effect = ProtocolError("connection reset")
        service = StorageService(storage_settings)

        with (
            patch.object(service, "_get_client", return_value=mock_minio_client),
            patch("time.sleep"),
            pytest.raises(StorageError, match="Storage unreachable"),
        ):
            service.get_document("emails/abc.eml")

        assert mock_minio_client.get_object.call_count == 3


def test_is_retryable() -> None:
    """Permanent S3 codes are not retried; transient ones are."""
    assert _is_retryable(make_s3_error("NoSuchKey")) is False
    assert _is_retryable(make_s3_error("AccessDenied", 403)) is False
    assert _is_retryable(make_s3_error("SlowDown", 503)) is True
    assert _is_retryable(ProtocolError("reset")) is True
    assert _is_retryable(ValueError("bad")) is False


class TestStorageSettingsConfiguration:
    """Test storage settings via environment variables."""

    def test_storage_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should read storage settings from environment."""
        monkeypatch.setenv("APP_STORAGE_ENABLED", "true")
        monkeypatch.setenv("APP_STORAGE_ENDPOINT", "minio.example.com:9000")
        monkeypatch.setenv("APP_STORAGE_BUCKET", "inbound-email")

        settings = Settings(_env_file=None)

        assert settings.storage_enabled is True
        assert settings.storage_endpoint == "minio.example.com:9000"
        assert settings.storage_bucket == "inbound-email"
