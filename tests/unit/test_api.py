"""Tests for the HTTP API."""
from collections.abc import Generator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from fileintake.api.main import create_app
from fileintake.core.exceptions import StorageError
from fileintake.core.models import new_file_id
from fileintake.storage.service import StorageService


@pytest.fixture
def client(service: StorageService) -> Generator[TestClient, None, None]:
    with TestClient(create_app(service)) as test_client:
        yield test_client


@pytest.fixture
def s3_client_api(s3_service: StorageService) -> Generator[TestClient, None, None]:
    with TestClient(create_app(s3_service)) as test_client:
        yield test_client


def upload(client: TestClient, name: str, data: bytes, mime_type: str):
    return client.post("/api/upload", files={"file": (name, data, mime_type)})


class TestUploadEndpoint:
    """Test cases for POST /api/upload."""

    def test_upload(self, client: TestClient) -> None:
        response = upload(client, "notes.txt", b"hello", "text/plain")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["file"]["original_name"] == "notes.txt"
        assert body["file"]["size"] == 5
        assert body["file"]["download_url"] == f"/api/files/{body['file']['id']}"
        assert "relative_path" not in body["file"]

    def test_upload_invalid_type(self, client: TestClient) -> None:
        response = upload(client, "file.exe", b"MZ", "image/jpeg")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "UnsupportedFileTypeError"

    def test_upload_too_large(self, client: TestClient, service: StorageService) -> None:
        max_size = service.validator.max_size
        response = upload(client, "big.txt", b"x" * (max_size + 1), "text/plain")

        assert response.status_code == 400
        assert response.json()["details"]["max_bytes"] == max_size

    def test_upload_without_file(self, client: TestClient) -> None:
        response = client.post("/api/upload")
        assert response.status_code == 422

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"
        assert response.headers["X-Response-Time"].endswith("ms")


class TestFileEndpoints:
    """Test cases for listing, download, info and delete."""

    def test_list_pagination(self, client: TestClient) -> None:
        ids = [
            upload(client, f"{name}.txt", name.encode(), "text/plain").json()["file"]["id"]
            for name in ("a", "b", "c")
        ]

        response = client.get("/api/files", params={"page": 2, "limit": 1})

        assert response.status_code == 200
        body = response.json()
        assert [f["id"] for f in body["files"]] == [ids[1]]
        assert body["pagination"] == {
            "page": 2,
            "limit": 1,
            "total_files": 3,
            "total_pages": 3,
            "has_next": True,
            "has_prev": True,
        }

    def test_list_invalid_params(self, client: TestClient) -> None:
        response = client.get("/api/files", params={"page": "zero", "limit": "-5"})

        assert response.status_code == 200
        assert response.json()["pagination"]["page"] == 1
        assert response.json()["pagination"]["limit"] == 10

    def test_download(self, client: TestClient) -> None:
        data = bytes(range(200))
        file_id = upload(client, "scan.pdf", data, "application/pdf").json()["file"]["id"]

        response = client.get(f"/api/files/{file_id}")

        assert response.status_code == 200
        assert response.content == data
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-length"] == "200"
        assert 'filename="scan.pdf"' in response.headers["content-disposition"]

    def test_download_unknown(self, client: TestClient) -> None:
        response = client.get(f"/api/files/{new_file_id()}")

        assert response.status_code == 404
        assert response.json()["error"] == "File not found"

    def test_info(self, client: TestClient) -> None:
        file_id = upload(client, "notes.txt", b"hello", "text/plain").json()["file"]["id"]

        response = client.get(f"/api/files/{file_id}/info")

        assert response.status_code == 200
        assert response.json()["file"]["id"] == file_id
        assert response.json()["file"]["mime_type"] == "text/plain"

    def test_delete_then_not_found(self, client: TestClient) -> None:
        file_id = upload(client, "notes.txt", b"hello", "text/plain").json()["file"]["id"]

        response = client.delete(f"/api/files/{file_id}")

        assert response.status_code == 200
        assert response.json()["deleted_file"] == {"id": file_id, "original_name": "notes.txt"}
        assert client.get(f"/api/files/{file_id}/info").status_code == 404
        assert client.delete(f"/api/files/{file_id}").status_code == 404

    def test_partial_delete_reported(self, client: TestClient, service: StorageService) -> None:
        file_id = upload(client, "notes.txt", b"hello", "text/plain").json()["file"]["id"]

        with patch.object(
            service.backend, "delete_record", AsyncMock(side_effect=StorageError("read-only"))
        ):
            response = client.delete(f"/api/files/{file_id}")

        assert response.status_code == 500
        assert response.json()["error"] == "PartialDeleteError"
        assert response.json()["details"]["blob_deleted"] is True

    def test_storage_error_hides_details(
        self, client: TestClient, service: StorageService
    ) -> None:
        with patch.object(
            service.backend, "list_records", AsyncMock(side_effect=StorageError("/secret/path"))
        ):
            response = client.get("/api/files")

        assert response.status_code == 500
        assert "/secret/path" not in response.text


class TestS3Endpoints:
    """Test cases for the API over the S3 backend."""

    def test_download_redirects(self, s3_client_api: TestClient) -> None:
        body = upload(s3_client_api, "photo.png", b"\x89PNG", "image/png").json()

        response = s3_client_api.get(
            f"/api/files/{body['file']['id']}", follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == body["file"]["download_url"]
        assert body["file"]["download_url"].startswith("https://test-uploads.s3.")


class TestHealthEndpoints:
    """Test cases for health endpoints."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_live(self, client: TestClient) -> None:
        assert client.get("/live").json() == {"status": "alive"}

    def test_ready(self, client: TestClient) -> None:
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["ready"] is True
        assert response.json()["checks"] == {"app": True, "storage": True}

    def test_not_ready_when_storage_down(
        self, client: TestClient, service: StorageService
    ) -> None:
        with patch.object(service.backend, "check_health", AsyncMock(return_value=False)):
            response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["ready"] is False
        assert response.json()["checks"]["storage"] is False

    def test_info(self, client: TestClient) -> None:
        response = client.get("/info")

        assert response.status_code == 200
        assert response.json()["name"] == "FileIntake"
        assert "max_file_size" in response.json()["features"]
