"""
Uploads API — user files in Supabase Storage with a row in `files`.

POST   /api/v1/upload/single     — Upload one file
POST   /api/v1/upload/multiple   — Upload up to 10 files
GET    /api/v1/upload/files      — The caller's files, newest first
DELETE /api/v1/upload/files/{file_id}
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from app.core.security import get_current_user_id
from app.db.supabase_client import get_service_client
from app.models.uploads import (
    FileDeleteResponse,
    FileListResponse,
    FilePagination,
    MultipleUploadResponse,
    StoredFile,
)
from app.services.storage import (
    InvalidUploadError,
    StorageError,
    build_object_path,
    remove_objects,
    upload_object,
    validate_upload,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/upload", tags=["upload"])

FILES_TABLE = "files"
MAX_FILES_PER_REQUEST = 10


class _UploadFailed(Exception):
    """One file could not be stored; carries the client-facing detail."""


async def _store_file(client, user_id: str, upload: UploadFile, folder: str) -> StoredFile:
    """
    Validate, upload, and record one file.

    The storage object is removed again if the files row cannot be written.

    Raises:
        InvalidUploadError: The file fails validation.
        _UploadFailed: Storage or database failure.
    """
    content = await upload.read()
    ext = validate_upload(upload.filename, upload.content_type, len(content))
    file_name, path = build_object_path(folder, ext)

    try:
        file_url = upload_object(path, content, upload.content_type)
    except StorageError:
        raise _UploadFailed("Failed to upload file.")

    record = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "original_name": upload.filename,
        "file_name": file_name,
        "file_path": path,
        "file_url": file_url,
        "file_size": len(content),
        "mime_type": upload.content_type,
        "folder": folder,
        "uploaded_at": datetime.now(timezone.utc).isoformat(),
    }

    try:
        result = client.table(FILES_TABLE).insert(record).execute()
        if not result.data:
            raise RuntimeError("no data returned from database")
    except Exception as exc:
        logger.error("File record creation failed for %s: %s", upload.filename, exc)
        try:
            remove_objects([path])
        except StorageError:
            logger.warning("Orphaned storage object left at %s", path)
        raise _UploadFailed("Failed to save file record.")

    return StoredFile(**result.data[0])


# ===================================================================
# POST /api/v1/upload/single
# ===================================================================

@router.post(
    "/single",
    status_code=status.HTTP_201_CREATED,
    response_model=StoredFile,
)
async def upload_single(
    file: Optional[UploadFile] = File(default=None),
    folder: str = Form(default="general"),
    user_id: str = Depends(get_current_user_id),
) -> StoredFile:
    """
    Upload one file into the given folder.

    Returns:
        201: File stored.
        400: No file, empty file, too large, or disallowed type.
        500: Storage or database failure.
    """
    if file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded.",
        )

    client = get_service_client()
    try:
        stored = await _store_file(client, user_id, file, folder)
    except InvalidUploadError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except _UploadFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )

    logger.info("File uploaded: %s by user %s", stored.original_name, user_id[:8])
    return stored


# ===================================================================
# POST /api/v1/upload/multiple
# ===================================================================

@router.post(
    "/multiple",
    status_code=status.HTTP_201_CREATED,
    response_model=MultipleUploadResponse,
)
async def upload_multiple(
    files: Optional[list[UploadFile]] = File(default=None),
    folder: str = Form(default="general"),
    user_id: str = Depends(get_current_user_id),
) -> MultipleUploadResponse:
    """
    Upload several files. Files that fail are skipped and logged; the
    response reports how many made it.

    Returns:
        201: Upload summary (possibly zero successes).
        400: No files, or more than 10.
    """
    if not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No files uploaded.",
        )
    if len(files) > MAX_FILES_PER_REQUEST:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot upload more than {MAX_FILES_PER_REQUEST} files at once.",
        )

    client = get_service_client()
    uploaded: list[StoredFile] = []
    for upload in files:
        try:
            uploaded.append(await _store_file(client, user_id, upload, folder))
        except (InvalidUploadError, _UploadFailed) as exc:
            logger.warning("Skipping %s: %s", upload.filename, exc)

    logger.info("%d of %d files uploaded by user %s", len(uploaded), len(files), user_id[:8])
    return MultipleUploadResponse(
        uploaded_files=uploaded,
        total_files=len(files),
        successful_uploads=len(uploaded),
    )


# ===================================================================
# GET /api/v1/upload/files
# ===================================================================

@router.get(
    "/files",
    status_code=status.HTTP_200_OK,
    response_model=FileListResponse,
)
async def list_files(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    folder: Optional[str] = Query(default=None),
    user_id: str = Depends(get_current_user_id),
) -> FileListResponse:
    """List the caller's files, newest first, optionally within one folder."""
    client = get_service_client()
    query = (
        client.table(FILES_TABLE)
        .select("*", count="exact")
        .eq("user_id", user_id)
    )
    if folder:
        query = query.eq("folder", folder)

    offset = (page - 1) * limit
    try:
        result = (
            query.order("uploaded_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to list files for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve files.",
        )

    rows = result.data or []
    total = result.count or 0
    total_pages = math.ceil(total / limit)
    return FileListResponse(
        files=[StoredFile(**row) for row in rows],
        pagination=FilePagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )


# ===================================================================
# DELETE /api/v1/upload/files/{file_id}
# ===================================================================

@router.delete(
    "/files/{file_id}",
    status_code=status.HTTP_200_OK,
    response_model=FileDeleteResponse,
)
async def delete_file(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
) -> FileDeleteResponse:
    """
    Delete one of the caller's files.

    A storage removal failure is logged and the row is deleted anyway, so
    the file disappears from the caller's list either way.

    Returns:
        200: File deleted.
        404: No such file owned by the caller.
        500: Database error.
    """
    client = get_service_client()

    found = (
        client.table(FILES_TABLE)
        .select("*")
        .eq("id", file_id)
        .eq("user_id", user_id)
        .execute()
    )
    if not found.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found.",
        )
    record = found.data[0]

    try:
        remove_objects([record["file_path"]])
    except StorageError:
        logger.warning("Storage object %s was not removed", record["file_path"])

    try:
        client.table(FILES_TABLE).delete().eq("id", file_id).eq("user_id", user_id).execute()
    except Exception as exc:
        logger.error("Failed to delete file record %s: %s", file_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete file record.",
        )

    logger.info("File deleted: %s by user %s", record.get("original_name"), user_id[:8])
    return FileDeleteResponse(file_id=file_id)
