"""
Auth Models — Pydantic schemas for the account/session endpoints.

The mobile app sends camelCase keys (userName, firstName, refreshToken...);
request models accept those and the snake_case names.
"""

from __future__ import annotations

import re
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# lower, upper, digit, special
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])")
MIN_PASSWORD_LENGTH = 8


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Please provide a valid email address")
    return v


def _check_password(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not PASSWORD_PATTERN.match(v):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase "
            "letter, one number, and one special character"
        )
    return v


class _EmailModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)


class RegisterRequest(_EmailModel):
    """
    Payload for POST /api/v1/auth/register.

    Self-registration always creates a "user"; elevated roles are granted
    by an admin afterwards.
    """

    password: str
    user_name: str = Field(..., alias="userName", min_length=2, max_length=50)
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=50)
    family_name: str = Field(..., alias="familyName", min_length=1, max_length=50)
    role: Literal["user"] = "user"

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class LoginRequest(_EmailModel):
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(_EmailModel):
    pass


class VerifyOtpRequest(_EmailModel):
    """Codes from forgot-password are "recovery" codes; sign-in codes are "email"."""

    otp: str = Field(..., min_length=4, max_length=10)
    type: Literal["recovery", "email"] = "recovery"


class ResetPasswordRequest(_EmailModel):
    """The access_token comes from a verified recovery OTP."""

    password: str
    access_token: str = Field(..., alias="accessToken", min_length=1)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("current_password", "currentPassword"),
    )
    new_password: str = Field(
        ...,
        validation_alias=AliasChoices("new_password", "newPassword", "password"),
    )
    confirm_password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("confirm_password", "confirmPassword"),
    )

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _check_password(v)

    @model_validator(mode="after")
    def passwords_match(self) -> ChangePasswordRequest:
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            raise ValueError("Passwords do not match")
        return self


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("refresh_token", "refreshToken"),
    )


class UserSummary(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    family_name: Optional[str] = None
    user_name: Optional[str] = None
    avatar: Optional[str] = None
    role: str = "user"
    status: Optional[str] = None


class VehicleSummary(BaseModel):
    """The user's first vehicle, or all-null when they have none."""

    id: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    type: Optional[str] = None
    registration_date: Optional[str] = None


class RegisterResponse(BaseModel):
    message: str = "User registered successfully"
    user: UserSummary


class SessionResponse(BaseModel):
    """Returned by login and OTP verification."""

    user: UserSummary
    vehicle: VehicleSummary
    token: str
    refresh_token: Optional[str] = None


class TokenPairResponse(BaseModel):
    token: str
    refresh_token: str
    expires_at: Optional[int] = None


class PasswordUpdatedResponse(BaseModel):
    message: str
    access_token: str
    refresh_token: Optional[str] = None
    user: dict


class MessageResponse(BaseModel):
    message: str
