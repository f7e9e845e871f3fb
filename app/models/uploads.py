"""
Upload Models — response schemas for the file upload API.

Request bodies are multipart forms, handled directly by the route
signatures (UploadFile + Form).
"""

from typing import Optional

from pydantic import BaseModel


class StoredFile(BaseModel):
    """One row of the files table, as returned to the client."""

    id: str
    original_name: str
    file_name: str
    file_url: str
    file_size: int
    mime_type: str
    folder: str
    uploaded_at: Optional[str] = None


class MultipleUploadResponse(BaseModel):
    uploaded_files: list[StoredFile]
    total_files: int
    successful_uploads: int


class FilePagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class FileListResponse(BaseModel):
    files: list[StoredFile]
    pagination: FilePagination


class FileDeleteResponse(BaseModel):
    status: str = "deleted"
    file_id: str
