"""Pytest configuration and fixtures."""
import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

# Keep the import-time settings instance out of the working directory
os.environ.setdefault("STORAGE_PATH", str(Path(tempfile.gettempdir()) / "fileintake-tests"))

import boto3
import pytest
from moto import mock_aws

from fileintake.core.config import S3Config
from fileintake.ingest.validator import FileValidator
from fileintake.storage.local import LocalStorage
from fileintake.storage.remote import S3Storage
from fileintake.storage.service import StorageService

MAX_SIZE = 1024


@pytest.fixture
def validator() -> FileValidator:
    """Validator with a small ceiling and the default allow-lists."""
    return FileValidator(
        max_size=MAX_SIZE,
        allowed_mime_types=["image/jpeg", "image/png", "application/pdf", "text/plain"],
        allowed_extensions=[".jpg", ".jpeg", ".png", ".pdf", ".txt"],
    )


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Empty local storage root."""
    return tmp_path / "uploads"


@pytest.fixture
def local_storage(storage_root: Path) -> LocalStorage:
    """Local backend rooted in a temp directory."""
    return LocalStorage(base_path=storage_root)


@pytest.fixture
def service(local_storage: LocalStorage, validator: FileValidator) -> StorageService:
    """Storage service over the local backend."""
    return StorageService(local_storage, validator=validator)


@pytest.fixture
def s3_config() -> S3Config:
    """S3 settings with fake credentials."""
    return S3Config(
        bucket="test-uploads",
        folder="file-upload-service",
        region="us-east-1",
        access_key_id="testing",
        secret_access_key="testing",
        timeout=10.0,
    )


@pytest.fixture
def s3_client(s3_config: S3Config) -> Generator[Any, None, None]:
    """Mocked S3 with the test bucket created."""
    with mock_aws():
        client = boto3.client(
            "s3",
            region_name=s3_config.region,
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
        )
        client.create_bucket(Bucket=s3_config.bucket)
        yield client


@pytest.fixture
def s3_storage(s3_config: S3Config, s3_client: Any) -> S3Storage:
    """S3 backend built from config inside the mock."""
    return S3Storage(s3_config)


@pytest.fixture
def s3_service(s3_storage: S3Storage, validator: FileValidator) -> StorageService:
    """Storage service over the S3 backend."""
    return StorageService(s3_storage, validator=validator)
