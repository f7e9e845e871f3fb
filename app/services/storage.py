"""
Storage Service — uploads to the Supabase Storage bucket.

Used by the upload routes, profile avatars, and feedback attachments.
Objects are stored as <folder>/<uuid><ext> so client file names never
collide or leak into paths.
"""

import logging
import os
import uuid

from app.core.config import MAX_FILE_SIZE, STORAGE_BUCKET
from app.db.supabase_client import get_service_client

logger = logging.getLogger(__name__)

# extension -> accepted MIME types
ALLOWED_TYPES: dict[str, tuple[str, ...]] = {
    ".jpg": ("image/jpeg",),
    ".jpeg": ("image/jpeg",),
    ".png": ("image/png",),
    ".gif": ("image/gif",),
    ".pdf": ("application/pdf",),
    ".doc": ("application/msword",),
    ".docx": ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",),
    ".txt": ("text/plain",),
    ".csv": ("text/csv", "application/csv"),
    ".xls": ("application/vnd.ms-excel",),
    ".xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",),
}

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif")


class StorageError(Exception):
    """Raised when Supabase Storage rejects an upload or removal."""


class InvalidUploadError(ValueError):
    """Raised when a file fails the type or size checks."""


def validate_upload(
    filename: str,
    content_type: str | None,
    size: int,
    allowed_extensions=None,
) -> str:
    """
    Check a file against the size limit and the type allow-list.

    Both the extension and the declared MIME type must match.

    Returns:
        The lower-cased extension (e.g. ".png").

    Raises:
        InvalidUploadError: Empty, oversized, or disallowed file.
    """
    if size == 0:
        raise InvalidUploadError("Uploaded file is empty.")
    if size > MAX_FILE_SIZE:
        raise InvalidUploadError(
            f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)}MB."
        )

    ext = os.path.splitext(filename or "")[1].lower()
    allowed = allowed_extensions or tuple(ALLOWED_TYPES)
    mime = (content_type or "").split(";")[0].strip().lower()
    if ext not in allowed or mime not in ALLOWED_TYPES.get(ext, ()):
        raise InvalidUploadError(
            "Invalid file type. Only images, PDFs, and documents are allowed."
        )
    return ext


def build_object_path(folder: str, extension: str) -> tuple[str, str]:
    """Return (file_name, object_path) for a new object in folder."""
    file_name = f"{uuid.uuid4()}{extension}"
    return file_name, f"{folder.strip('/') or 'general'}/{file_name}"


def upload_object(path: str, content: bytes, content_type: str) -> str:
    """
    Store bytes at path in the bucket and return the public URL.

    Raises:
        StorageError: Upload rejected or storage unreachable.
    """
    try:
        bucket = get_service_client().storage.from_(STORAGE_BUCKET)
        bucket.upload(
            path,
            content,
            {
                "content-type": content_type,
                "cache-control": "3600",
                "upsert": "false",
            },
        )
        return bucket.get_public_url(path)
    except Exception as exc:
        logger.error("Storage upload failed for %s: %s", path, exc)
        raise StorageError(str(exc)) from exc


def remove_objects(paths: list[str]) -> None:
    """
    Delete objects from the bucket.

    Raises:
        StorageError: Removal failed.
    """
    try:
        get_service_client().storage.from_(STORAGE_BUCKET).remove(paths)
    except Exception as exc:
        logger.error("Storage removal failed for %s: %s", paths, exc)
        raise StorageError(str(exc)) from exc
