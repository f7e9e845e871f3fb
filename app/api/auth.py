"""
Auth API — registration, sessions and password flows on Supabase Auth.

POST /api/v1/auth/register         — Create auth user + profile
POST /api/v1/auth/login            — Password sign-in
POST /api/v1/auth/refresh          — New token pair from a refresh token
POST /api/v1/auth/logout           — Revoke the caller's session
POST /api/v1/auth/forgot-password  — E-mail a recovery code
POST /api/v1/auth/verify-otp       — Exchange the code for a session
POST /api/v1/auth/reset-password   — Set a new password with a recovery session
POST /api/v1/auth/change-password  — Change password (authenticated)
GET  /api/v1/auth/verify-email     — Landing page for the confirmation link
"""

import logging
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse

from app.core.config import EMAIL_REDIRECT_URL
from app.core.security import get_bearer_token, get_current_user
from app.db.supabase_client import get_service_client
from app.models.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordUpdatedResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    SessionResponse,
    TokenPairResponse,
    UserSummary,
    VehicleSummary,
    VerifyOtpRequest,
)
from app.services import supabase_auth
from app.services.supabase_auth import AuthServiceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

PROFILES_TABLE = "profiles"

_VERIFIED_PAGE = """<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>Email verified</title></head>
<body><h1>Email verified</h1><p>Your account is confirmed. You can return to the app and log in.</p></body></html>
"""

_VERIFICATION_FAILED_PAGE = """<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>Verification failed</title></head>
<body><h1>Verification failed</h1><p>This link is invalid or has expired. Request a new one from the app.</p></body></html>
"""


def _conflict(field: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"field": field, "message": message},
    )


def _auth_unavailable(exc: AuthServiceError) -> Optional[HTTPException]:
    """503 for network failures (no HTTP status from Supabase)."""
    if exc.status_code is None:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable.",
        )
    return None


def _load_profile(client, user_id: str) -> dict:
    try:
        result = client.table(PROFILES_TABLE).select("*").eq("id", user_id).execute()
    except Exception as exc:
        logger.error("Profile fetch failed for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch user profile.",
        )
    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch user profile.",
        )
    return result.data[0]


def _first_vehicle(client, user_id: str) -> VehicleSummary:
    try:
        result = (
            client.table("vehicles")
            .select("id, brand, model, type, registration_date")
            .eq("owner_id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as exc:
        logger.error("Vehicle fetch failed for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch user vehicle.",
        )
    return VehicleSummary(**result.data[0]) if result.data else VehicleSummary()


def _session_response(session: dict) -> SessionResponse:
    """Build the login payload: profile, first vehicle and tokens."""
    user = session.get("user") or {}
    user_id = user.get("id")
    access_token = session.get("access_token")
    if not user_id or not access_token:
        logger.error("Auth session is missing the user or access token")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed - missing access token.",
        )

    client = get_service_client()
    profile = _load_profile(client, user_id)
    if profile.get("status") != "active":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is not active.",
        )

    return SessionResponse(
        user=UserSummary(
            id=user_id,
            email=user.get("email") or profile.get("email"),
            first_name=profile.get("first_name"),
            family_name=profile.get("family_name"),
            user_name=profile.get("user_name"),
            avatar=profile.get("avatar"),
            role=profile.get("role") or "user",
            status=profile.get("status"),
        ),
        vehicle=_first_vehicle(client, user_id),
        token=access_token,
        refresh_token=session.get("refresh_token"),
    )


# ===================================================================
# POST /api/v1/auth/register
# ===================================================================

@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=RegisterResponse,
)
async def register(payload: RegisterRequest) -> RegisterResponse:
    """
    Create the Supabase auth user and its profiles row.

    If the profile insert fails the auth user is deleted again, so a
    retry with the same e-mail can succeed.

    Returns:
        201: User created; a confirmation e-mail has been sent.
        400: Supabase rejected the sign-up (e.g. weak password).
        409: E-mail or username already taken ({"field", "message"}).
        500: Database error.
    """
    client = get_service_client()

    try:
        email_taken = (
            client.table(PROFILES_TABLE).select("id").eq("email", payload.email).execute()
        )
        name_taken = (
            client.table(PROFILES_TABLE).select("id").eq("user_name", payload.user_name).execute()
        )
    except Exception as exc:
        logger.error("Registration pre-check failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error checking existing accounts.",
        )

    if email_taken.data:
        raise _conflict("email", "Email already exists")
    if name_taken.data:
        raise _conflict("username", "Username already exists")

    try:
        auth_user = await supabase_auth.sign_up(
            payload.email,
            payload.password,
            {"user_name": payload.user_name, "role": payload.role},
            redirect_to=EMAIL_REDIRECT_URL or None,
        )
    except AuthServiceError as exc:
        unavailable = _auth_unavailable(exc)
        if unavailable:
            raise unavailable
        if "already registered" in exc.message.lower():
            raise _conflict("email", "Email already exists")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)

    user_id = auth_user.get("id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed.",
        )

    profile = {
        "id": user_id,
        "email": payload.email,
        "first_name": payload.first_name,
        "family_name": payload.family_name,
        "user_name": payload.user_name,
        "role": payload.role,
        "status": "active",
    }
    try:
        result = client.table(PROFILES_TABLE).insert(profile).execute()
        if not result.data:
            raise RuntimeError("no data returned from database")
    except Exception as exc:
        logger.error("Profile creation failed for user %s: %s", user_id[:8], exc)
        try:
            await supabase_auth.admin_delete_user(user_id)
        except AuthServiceError as cleanup_exc:
            logger.error(
                "Could not remove orphaned auth user %s: %s", user_id[:8], cleanup_exc,
            )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user profile.",
        )

    logger.info("New user registered: %s", user_id[:8])
    return RegisterResponse(user=UserSummary(**profile))


# ===================================================================
# POST /api/v1/auth/login
# ===================================================================

@router.post("/login", response_model=SessionResponse)
async def login(payload: LoginRequest) -> SessionResponse:
    """
    Sign in with e-mail and password.

    Returns:
        200: User, first vehicle (or nulls), access and refresh tokens.
        401: Bad credentials, unconfirmed e-mail, or inactive account.
        503: Supabase Auth unreachable.
    """
    try:
        session = await supabase_auth.sign_in_with_password(payload.email, payload.password)
    except AuthServiceError as exc:
        unavailable = _auth_unavailable(exc)
        if unavailable:
            raise unavailable
        detail = "Verify your email before login" if exc.email_not_confirmed else exc.message
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

    response = _session_response(session)
    logger.info("User logged in: %s", response.user.id[:8])
    return response


# ===================================================================
# POST /api/v1/auth/refresh
# ===================================================================

@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(payload: Optional[RefreshRequest] = None) -> TokenPairResponse:
    if payload is None or not payload.refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No refresh token found.",
        )

    try:
        session = await supabase_auth.refresh_session(payload.refresh_token)
    except AuthServiceError as exc:
        unavailable = _auth_unavailable(exc)
        if unavailable:
            raise unavailable
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token.",
        )

    if not session.get("access_token") or not session.get("refresh_token"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token.",
        )

    return TokenPairResponse(
        token=session["access_token"],
        refresh_token=session["refresh_token"],
        expires_at=session.get("expires_at"),
    )


# ===================================================================
# POST /api/v1/auth/logout
# ===================================================================

@router.post("/logout", response_model=MessageResponse)
async def logout(token: str = Depends(get_bearer_token)) -> MessageResponse:
    try:
        await supabase_auth.sign_out(token)
    except AuthServiceError as exc:
        unavailable = _auth_unavailable(exc)
        if unavailable:
            raise unavailable
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message or "Failed to revoke token.",
        )
    return MessageResponse(message="Access token revoked successfully")


# ===================================================================
# Password recovery: forgot-password -> verify-otp -> reset-password
# ===================================================================

@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(payload: ForgotPasswordRequest) -> MessageResponse:
    """
    E-mail a recovery code to a registered address.

    Returns:
        200: Code sent.
        404: No account with this e-mail.
        500: Supabase refused to send the e-mail.
    """
    client = get_service_client()
    try:
        found = client.table(PROFILES_TABLE).select("id").eq("email", payload.email).execute()
    except Exception as exc:
        logger.error("Account lookup failed during password reset: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Password reset request failed.",
        )
    if not found.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="This email does not exist.",
        )

    try:
        await supabase_auth.send_recovery_email(payload.email)
    except AuthServiceError as exc:
        logger.error("Recovery e-mail failed for user %s: %s", found.data[0]["id"][:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send password reset OTP email.",
        )

    return MessageResponse(message="Password reset OTP email sent successfully")


@router.post("/verify-otp", response_model=SessionResponse)
async def verify_otp(payload: VerifyOtpRequest) -> SessionResponse:
    """
    Exchange an e-mailed code for a session.

    The returned token is what reset-password expects as access_token.
    """
    try:
        session = await supabase_auth.verify_otp(payload.email, payload.otp, payload.type)
    except AuthServiceError as exc:
        unavailable = _auth_unavailable(exc)
        if unavailable:
            raise unavailable
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired OTP.",
        )

    return _session_response(session)


def _password_updated(message: str, session: dict) -> PasswordUpdatedResponse:
    return PasswordUpdatedResponse(
        message=message,
        access_token=session["access_token"],
        refresh_token=session.get("refresh_token"),
        user=session.get("user") or {},
    )


@router.post("/reset-password", response_model=PasswordUpdatedResponse)
async def reset_password(payload: ResetPasswordRequest) -> PasswordUpdatedResponse:
    """
    Set a new password using the session from verify-otp.

    Returns:
        200: Password changed; a fresh session is returned.
        400: Malformed token, or a token for a different user.
        401: Supabase rejected the token.
        500: Password update or re-login failed.
    """
    try:
        claims = jwt.decode(payload.access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid access token.",
        )

    user_id = claims.get("sub") if isinstance(claims, dict) else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid access token.",
        )

    # The unverified claims only pick the user; Supabase vouches for the token.
    try:
        auth_user = await supabase_auth.get_user(payload.access_token)
    except AuthServiceError as exc:
        unavailable = _auth_unavailable(exc)
        if unavailable:
            raise unavailable
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token.",
        )
    if auth_user.get("id") != user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid access token.",
        )

    try:
        await supabase_auth.admin_update_user(user_id, {"password": payload.password})
    except AuthServiceError as exc:
        logger.error("Password reset failed for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reset password.",
        )

    try:
        session = await supabase_auth.sign_in_with_password(payload.email, payload.password)
    except AuthServiceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Password updated but failed to re-login.",
        )

    logger.info("Password reset for user %s", user_id[:8])
    return _password_updated("Password reset successfully", session)


@router.post("/change-password", response_model=PasswordUpdatedResponse)
async def change_password(
    payload: ChangePasswordRequest,
    user: dict = Depends(get_current_user),
) -> PasswordUpdatedResponse:
    """
    Change the caller's password after re-checking the current one.

    Returns:
        200: Password changed; a fresh session is returned.
        400: Current password is wrong.
        401: Missing or invalid authentication token.
        500: Password update or re-login failed.
    """
    user_id = user["id"]
    email = user.get("email")
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Account has no email address.",
        )

    try:
        await supabase_auth.sign_in_with_password(email, payload.current_password)
    except AuthServiceError as exc:
        unavailable = _auth_unavailable(exc)
        if unavailable:
            raise unavailable
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect.",
        )

    try:
        await supabase_auth.admin_update_user(user_id, {"password": payload.new_password})
    except AuthServiceError as exc:
        logger.error("Password update failed for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update password.",
        )

    try:
        session = await supabase_auth.sign_in_with_password(email, payload.new_password)
    except AuthServiceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Password updated but failed to re-login.",
        )

    logger.info("Password changed for user %s", user_id[:8])
    return _password_updated("Password updated successfully", session)


# ===================================================================
# GET /api/v1/auth/verify-email
# ===================================================================

@router.get("/verify-email", response_class=HTMLResponse)
async def verify_email(
    type: Optional[str] = Query(default=None),
    token_hash: Optional[str] = Query(default=None),
    access_token: Optional[str] = Query(default=None),
) -> HTMLResponse:
    """
    Target of the confirmation link. Accepts either a token_hash + type
    (PKCE-style link) or an access_token (implicit link) and renders a
    small success or failure page.
    """
    try:
        if token_hash and type:
            otp_type = "signup" if type == "signup" else "email"
            await supabase_auth.verify_token_hash(token_hash, otp_type)
            return HTMLResponse(_VERIFIED_PAGE)
        if access_token:
            await supabase_auth.get_user(access_token)
            return HTMLResponse(_VERIFIED_PAGE)
    except AuthServiceError as exc:
        logger.warning("Email verification failed: %s", exc)
        return HTMLResponse(_VERIFICATION_FAILED_PAGE, status_code=status.HTTP_400_BAD_REQUEST)

    return HTMLResponse(_VERIFICATION_FAILED_PAGE, status_code=status.HTTP_400_BAD_REQUEST)
