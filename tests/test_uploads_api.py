"""
Uploads API & Storage Service Tests

Tests cover:
1. validate_upload — size limit, extension/MIME allow-list, image-only mode
2. upload_object / remove_objects against a mocked Storage bucket
3. POST /api/v1/upload/single — 201, missing file, bad type, DB failure cleanup
4. POST /api/v1/upload/multiple — partial success, more than 10 files
5. GET /api/v1/upload/files — pagination flags
6. DELETE /api/v1/upload/files/{file_id} — 404, storage failure tolerated

Run with: pytest tests/test_uploads_api.py -v
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.security import get_current_user_id
from app.main import app
from app.services.storage import (
    IMAGE_EXTENSIONS,
    InvalidUploadError,
    StorageError,
    build_object_path,
    remove_objects,
    upload_object,
    validate_upload,
)


USER_ID = str(uuid.uuid4())
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _files_table() -> MagicMock:
    """files table mock whose insert echoes the row back."""
    table = MagicMock()
    table.insert.side_effect = lambda row: MagicMock(
        execute=MagicMock(return_value=MagicMock(data=[row]))
    )
    return table


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def client():
    """FastAPI test client for the diagnostics API."""
    return TestClient(app)


@pytest.fixture
def auth_user():
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID
    yield USER_ID
    app.dependency_overrides.pop(get_current_user_id, None)


# ===================================================================
# Storage service
# ===================================================================

class TestValidateUpload:

    def test_accepts_png(self):
        assert validate_upload("Photo.PNG", "image/png", 100) == ".png"

    def test_mime_parameters_ignored(self):
        assert validate_upload("notes.txt", "text/plain; charset=utf-8", 10) == ".txt"

    def test_rejects_empty(self):
        with pytest.raises(InvalidUploadError, match="empty"):
            validate_upload("a.png", "image/png", 0)

    def test_rejects_too_large(self):
        with pytest.raises(InvalidUploadError, match="Maximum size is 5MB"):
            validate_upload("a.png", "image/png", 5 * 1024 * 1024 + 1)

    def test_rejects_mismatched_mime(self):
        with pytest.raises(InvalidUploadError, match="Invalid file type"):
            validate_upload("a.png", "application/pdf", 100)

    def test_rejects_executable(self):
        with pytest.raises(InvalidUploadError):
            validate_upload("setup.exe", "application/octet-stream", 100)

    def test_image_only(self):
        with pytest.raises(InvalidUploadError):
            validate_upload("cv.pdf", "application/pdf", 100, IMAGE_EXTENSIONS)

    def test_object_path(self):
        file_name, path = build_object_path("avatars", ".jpg")
        assert file_name.endswith(".jpg")
        assert path == f"avatars/{file_name}"


class TestStorageBucket:

    def test_upload_returns_public_url(self):
        mock_client = MagicMock()
        bucket = mock_client.storage.from_.return_value
        bucket.get_public_url.return_value = "https://cdn.example/uploads/general/x.png"

        with patch("app.services.storage.get_service_client", return_value=mock_client):
            url = upload_object("general/x.png", PNG, "image/png")

        assert url == "https://cdn.example/uploads/general/x.png"
        path, content, options = bucket.upload.call_args.args
        assert path == "general/x.png"
        assert options["content-type"] == "image/png"
        assert options["upsert"] == "false"

    def test_upload_failure_raises_storage_error(self):
        mock_client = MagicMock()
        mock_client.storage.from_.return_value.upload.side_effect = Exception("bucket missing")

        with patch("app.services.storage.get_service_client", return_value=mock_client):
            with pytest.raises(StorageError):
                upload_object("general/x.png", PNG, "image/png")

    def test_remove(self):
        mock_client = MagicMock()
        with patch("app.services.storage.get_service_client", return_value=mock_client):
            remove_objects(["general/x.png"])

        mock_client.storage.from_.return_value.remove.assert_called_once_with(["general/x.png"])


# ===================================================================
# POST /api/v1/upload/single
# ===================================================================

class TestUploadSingle:

    def test_upload_returns_201(self, client, auth_user):
        files_table = _files_table()
        mock_client = MagicMock()
        mock_client.table.return_value = files_table

        with patch("app.api.uploads.get_service_client", return_value=mock_client), \
             patch("app.api.uploads.upload_object",
                   return_value="https://cdn.example/f.png") as mock_upload:
            resp = client.post(
                "/api/v1/upload/single",
                files={"file": ("dash.png", PNG, "image/png")},
                data={"folder": "receipts"},
            )

        assert resp.status_code == 201
        body = resp.json()
        assert body["original_name"] == "dash.png"
        assert body["folder"] == "receipts"
        assert body["file_size"] == len(PNG)
        assert body["file_url"] == "https://cdn.example/f.png"
        assert mock_upload.call_args.args[0].startswith("receipts/")

        row = files_table.insert.call_args.args[0]
        assert row["user_id"] == USER_ID
        print("  single upload -> 201")

    def test_no_file_returns_400(self, client, auth_user):
        resp = client.post("/api/v1/upload/single", data={"folder": "receipts"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No file uploaded."

    def test_bad_type_returns_400(self, client, auth_user):
        with patch("app.api.uploads.get_service_client", return_value=MagicMock()):
            resp = client.post(
                "/api/v1/upload/single",
                files={"file": ("run.sh", b"#!/bin/sh", "application/x-sh")},
            )
        assert resp.status_code == 400
        assert "Invalid file type" in resp.json()["detail"]

    def test_db_failure_removes_object(self, client, auth_user):
        mock_client = MagicMock()
        mock_client.table.return_value.insert.return_value.execute.side_effect = Exception("db")

        with patch("app.api.uploads.get_service_client", return_value=mock_client), \
             patch("app.api.uploads.upload_object", return_value="https://cdn.example/f.png"), \
             patch("app.api.uploads.remove_objects") as mock_remove:
            resp = client.post(
                "/api/v1/upload/single",
                files={"file": ("dash.png", PNG, "image/png")},
            )

        assert resp.status_code == 500
        assert resp.json()["detail"] == "Failed to save file record."
        (paths,), _ = mock_remove.call_args
        assert paths[0].startswith("general/")

    def test_storage_failure_returns_500(self, client, auth_user):
        with patch("app.api.uploads.get_service_client", return_value=MagicMock()), \
             patch("app.api.uploads.upload_object", side_effect=StorageError("down")):
            resp = client.post(
                "/api/v1/upload/single",
                files={"file": ("dash.png", PNG, "image/png")},
            )

        assert resp.status_code == 500
        assert resp.json()["detail"] == "Failed to upload file."

    def test_requires_auth(self, client):
        resp = client.post(
            "/api/v1/upload/single",
            files={"file": ("dash.png", PNG, "image/png")},
        )
        assert resp.status_code == 401


# ===================================================================
# POST /api/v1/upload/multiple
# ===================================================================

class TestUploadMultiple:

    def test_bad_files_are_skipped(self, client, auth_user):
        mock_client = MagicMock()
        mock_client.table.return_value = _files_table()

        with patch("app.api.uploads.get_service_client", return_value=mock_client), \
             patch("app.api.uploads.upload_object", return_value="https://cdn.example/f"):
            resp = client.post(
                "/api/v1/upload/multiple",
                files=[
                    ("files", ("a.png", PNG, "image/png")),
                    ("files", ("b.exe", b"MZ", "application/octet-stream")),
                    ("files", ("c.pdf", b"%PDF-1.4", "application/pdf")),
                ],
            )

        assert resp.status_code == 201
        body = resp.json()
        assert body["total_files"] == 3
        assert body["successful_uploads"] == 2
        assert [f["original_name"] for f in body["uploaded_files"]] == ["a.png", "c.pdf"]

    def test_too_many_files(self, client, auth_user):
        files = [("files", (f"{i}.png", PNG, "image/png")) for i in range(11)]
        resp = client.post("/api/v1/upload/multiple", files=files)

        assert resp.status_code == 400
        assert "more than 10" in resp.json()["detail"]


# ===================================================================
# GET / DELETE /api/v1/upload/files
# ===================================================================

def _file_row(**overrides) -> dict:
    row = {
        "id": str(uuid.uuid4()),
        "user_id": USER_ID,
        "original_name": "dash.png",
        "file_name": "abc.png",
        "file_path": "general/abc.png",
        "file_url": "https://cdn.example/general/abc.png",
        "file_size": 72,
        "mime_type": "image/png",
        "folder": "general",
        "uploaded_at": "2024-03-01T00:00:00+00:00",
    }
    row.update(overrides)
    return row


class TestFiles:

    def test_list_files_pagination(self, client, auth_user):
        mock_client = MagicMock()
        query = mock_client.table.return_value.select.return_value.eq.return_value
        query.order.return_value.range.return_value.execute.return_value = MagicMock(
            data=[_file_row(), _file_row()], count=12,
        )

        with patch("app.api.uploads.get_service_client", return_value=mock_client):
            resp = client.get("/api/v1/upload/files", params={"page": 2, "limit": 5})

        assert resp.status_code == 200
        body = resp.json()
        assert len(body["files"]) == 2
        assert body["pagination"] == {
            "page": 2, "limit": 5, "total": 12, "total_pages": 3,
            "has_next": True, "has_prev": True,
        }
        query.order.assert_called_once_with("uploaded_at", desc=True)
        query.order.return_value.range.assert_called_once_with(5, 9)

    def test_delete_file(self, client, auth_user):
        row = _file_row()
        mock_client = MagicMock()
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.eq.return_value.execute.return_value = (
            MagicMock(data=[row])
        )

        with patch("app.api.uploads.get_service_client", return_value=mock_client), \
             patch("app.api.uploads.remove_objects") as mock_remove:
            resp = client.delete(f"/api/v1/upload/files/{row['id']}")

        assert resp.status_code == 200
        assert resp.json() == {"status": "deleted", "file_id": row["id"]}
        mock_remove.assert_called_once_with(["general/abc.png"])
        table.delete.return_value.eq.assert_called_once_with("id", row["id"])

    def test_delete_survives_storage_failure(self, client, auth_user):
        row = _file_row()
        mock_client = MagicMock()
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.eq.return_value.execute.return_value = (
            MagicMock(data=[row])
        )

        with patch("app.api.uploads.get_service_client", return_value=mock_client), \
             patch("app.api.uploads.remove_objects", side_effect=StorageError("gone")):
            resp = client.delete(f"/api/v1/upload/files/{row['id']}")

        assert resp.status_code == 200
        table.delete.assert_called_once()

    def test_delete_unknown_file(self, client, auth_user):
        mock_client = MagicMock()
        mock_client.table.return_value.select.return_value.eq.return_value.eq.return_value \
            .execute.return_value = MagicMock(data=[])

        with patch("app.api.uploads.get_service_client", return_value=mock_client):
            resp = client.delete(f"/api/v1/upload/files/{uuid.uuid4()}")

        assert resp.status_code == 404
