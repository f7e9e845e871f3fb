"""
User Models — Pydantic schemas for profiles, feedback and admin views.

Defines request/response models for user-related endpoints:
- GET/PUT /api/v1/users/profile — The caller's profile
- POST /api/v1/users/feedback — Contact/feedback form
- GET /api/v1/users, GET /api/v1/users/{user_id} — Admin listing
- PUT /api/v1/users/{user_id}/status — Admin status change

Profile updates and feedback arrive as multipart forms (they may carry a
file); the route collects the form fields into these models for validation.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UserStatus = Literal["active", "inactive", "suspended"]
UserRole = Literal["user", "admin", "moderator"]

PHONE_PATTERN = r"^\+?[\d\s\-\(\)]+$"


class ProfileUpdateRequest(BaseModel):
    """Fields accepted by PUT /api/v1/users/profile. Only sent fields change."""

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    family_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    user_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    bio: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=100)
    website: Optional[str] = None

    @field_validator("website")
    @classmethod
    def validate_website(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("Please provide a valid URL for website")
        return v


class ProfileResponse(BaseModel):
    """A profiles row; extra columns pass through."""

    model_config = ConfigDict(extra="allow")

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    family_name: Optional[str] = None
    user_name: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class FeedbackRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    reason: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=5000)


class FeedbackResponse(BaseModel):
    message: str = "Feedback submitted successfully"
    feedback: dict


class UserStatusUpdateRequest(BaseModel):
    status: UserStatus


class UserStatusResponse(BaseModel):
    id: str
    email: Optional[str] = None
    status: str


class UserPagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class UserListResponse(BaseModel):
    users: list[ProfileResponse]
    pagination: UserPagination
