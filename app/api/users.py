"""
Users API — profiles, feedback, and admin user management.

GET  /api/v1/users/profile           — The caller's profile
PUT  /api/v1/users/profile           — Update profile fields and/or avatar
POST /api/v1/users/feedback          — Submit feedback with optional attachment
GET  /api/v1/users                   — (admin) Search and page through users
GET  /api/v1/users/{user_id}         — (admin) One user's profile
PUT  /api/v1/users/{user_id}/status  — (admin) Activate, deactivate, suspend
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError

from app.core.security import get_current_user_id, require_role
from app.db.supabase_client import get_service_client
from app.models.users import (
    FeedbackRequest,
    FeedbackResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    UserListResponse,
    UserPagination,
    UserRole,
    UserStatus,
    UserStatusResponse,
    UserStatusUpdateRequest,
)
from app.services.storage import (
    IMAGE_EXTENSIONS,
    InvalidUploadError,
    StorageError,
    build_object_path,
    upload_object,
    validate_upload,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"])

PROFILES_TABLE = "profiles"
FEEDBACK_TABLE = "feedback"


def _unprocessable(exc: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=exc.errors(include_url=False, include_context=False),
    )


async def _store_upload(upload: UploadFile, folder: str, allowed_extensions=None) -> str:
    """Validate and upload a form file; returns its public URL."""
    content = await upload.read()
    try:
        ext = validate_upload(
            upload.filename, upload.content_type, len(content), allowed_extensions,
        )
    except InvalidUploadError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    _, path = build_object_path(folder, ext)
    try:
        return upload_object(path, content, upload.content_type)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload file.",
        )


def _fetch_profile(client, user_id: str) -> dict:
    try:
        result = client.table(PROFILES_TABLE).select("*").eq("id", user_id).execute()
    except Exception as exc:
        logger.error("Profile fetch failed for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve profile.",
        )
    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found.",
        )
    return result.data[0]


# ===================================================================
# GET/PUT /api/v1/users/profile
# ===================================================================

@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    user_id: str = Depends(get_current_user_id),
) -> ProfileResponse:
    client = get_service_client()
    return ProfileResponse(**_fetch_profile(client, user_id))


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    first_name: Optional[str] = Form(default=None, alias="firstName"),
    family_name: Optional[str] = Form(default=None, alias="familyName"),
    user_name: Optional[str] = Form(default=None, alias="username"),
    phone: Optional[str] = Form(default=None),
    bio: Optional[str] = Form(default=None),
    location: Optional[str] = Form(default=None),
    website: Optional[str] = Form(default=None),
    avatar: Optional[UploadFile] = File(default=None),
    user_id: str = Depends(get_current_user_id),
) -> ProfileResponse:
    """
    Update the caller's profile from a multipart form.

    Blank form fields are ignored. An `avatar` image is stored under
    avatars/ and its public URL saved on the profile.

    Returns:
        200: Updated profile.
        400: Avatar is not an allowed image or is too large.
        404: Profile not found.
        422: A field fails validation.
        500: Storage or database error.
    """
    fields = {
        "first_name": first_name,
        "family_name": family_name,
        "user_name": user_name,
        "phone": phone,
        "bio": bio,
        "location": location,
        "website": website,
    }
    try:
        changes = ProfileUpdateRequest(
            **{k: v for k, v in fields.items() if v not in (None, "")}
        )
    except ValidationError as exc:
        raise _unprocessable(exc)

    update_data = changes.model_dump(exclude_none=True)
    if avatar is not None and avatar.filename:
        update_data["avatar"] = await _store_upload(avatar, "avatars", IMAGE_EXTENSIONS)
    update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

    client = get_service_client()
    try:
        result = (
            client.table(PROFILES_TABLE)
            .update(update_data)
            .eq("id", user_id)
            .execute()
        )
    except Exception as exc:
        logger.error("Profile update failed for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile.",
        )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found.",
        )

    logger.info("Profile updated for user %s (%s)", user_id[:8], ", ".join(sorted(update_data)))
    return ProfileResponse(**result.data[0])


# ===================================================================
# POST /api/v1/users/feedback
# ===================================================================

@router.post(
    "/feedback",
    status_code=status.HTTP_201_CREATED,
    response_model=FeedbackResponse,
)
async def submit_feedback(
    name: str = Form(...),
    email: str = Form(...),
    reason: str = Form(...),
    description: str = Form(...),
    attachment: Optional[UploadFile] = File(default=None),
    user_id: str = Depends(get_current_user_id),
) -> FeedbackResponse:
    """Store a feedback/contact submission; an attachment goes under feedback/."""
    try:
        form = FeedbackRequest(name=name, email=email, reason=reason, description=description)
    except ValidationError as exc:
        raise _unprocessable(exc)

    attachments = []
    if attachment is not None and attachment.filename:
        attachments.append(await _store_upload(attachment, "feedback"))

    row = {
        "userName": form.name,
        "userEmail": form.email,
        "contactReason": form.reason,
        "description": form.description,
        "attachment": attachments,
    }

    client = get_service_client()
    try:
        result = client.table(FEEDBACK_TABLE).insert(row).execute()
    except Exception as exc:
        logger.error("Feedback insert failed for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit feedback.",
        )

    logger.info("Feedback submitted by user %s", user_id[:8])
    return FeedbackResponse(feedback=result.data[0] if result.data else row)


# ===================================================================
# Admin: GET /api/v1/users, GET /api/v1/users/{user_id}
# ===================================================================

@router.get(
    "",
    response_model=UserListResponse,
    dependencies=[Depends(require_role(["admin"]))],
)
async def list_users(
    search: Optional[str] = Query(default=None, min_length=2, max_length=50),
    role: Optional[UserRole] = Query(default=None),
    user_status: Optional[UserStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> UserListResponse:
    """Page through profiles, matching `search` against names and e-mail."""
    client = get_service_client()
    query = client.table(PROFILES_TABLE).select("*", count="exact")

    if search:
        # PostgREST or-filter syntax; strip its separators from user input.
        term = search.translate(str.maketrans("", "", ",()"))
        query = query.or_(
            f"first_name.ilike.%{term}%,family_name.ilike.%{term}%,email.ilike.%{term}%"
        )
    if role:
        query = query.eq("role", role)
    if user_status:
        query = query.eq("status", user_status)

    offset = (page - 1) * limit
    try:
        result = query.range(offset, offset + limit - 1).execute()
    except Exception as exc:
        logger.error("User listing failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve users.",
        )

    total = result.count or 0
    return UserListResponse(
        users=[ProfileResponse(**row) for row in (result.data or [])],
        pagination=UserPagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )


def _require_user_uuid(value: str) -> None:
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Please provide a valid user ID.",
        )


@router.get(
    "/{user_id}",
    response_model=ProfileResponse,
    dependencies=[Depends(require_role(["admin"]))],
)
async def get_user(user_id: str) -> ProfileResponse:
    _require_user_uuid(user_id)
    client = get_service_client()
    return ProfileResponse(**_fetch_profile(client, user_id))


@router.put(
    "/{user_id}/status",
    response_model=UserStatusResponse,
    dependencies=[Depends(require_role(["admin"]))],
)
async def update_user_status(
    user_id: str,
    payload: UserStatusUpdateRequest,
) -> UserStatusResponse:
    """Set a user's account status. Inactive/suspended users cannot log in."""
    _require_user_uuid(user_id)
    client = get_service_client()
    try:
        result = (
            client.table(PROFILES_TABLE)
            .update({
                "status": payload.status,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("id", user_id)
            .execute()
        )
    except Exception as exc:
        logger.error("Status update failed for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user status.",
        )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found.",
        )

    profile = result.data[0]
    logger.info("User status updated: %s -> %s", user_id[:8], payload.status)
    return UserStatusResponse(id=profile["id"], email=profile.get("email"), status=profile["status"])
