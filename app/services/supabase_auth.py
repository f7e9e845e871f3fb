"""
Supabase Auth Service — thin async client for the GoTrue REST API.

Public calls (sign-up, sign-in, refresh, OTP) are sent with the anon key;
admin calls (/auth/v1/admin/*) with the service role key. Every failure,
network or HTTP, surfaces as AuthServiceError carrying the GoTrue message
and status so routes can map it to a response.
"""

import logging
from typing import Any, Optional

import httpx

from app.core.config import SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)

AUTH_TIMEOUT = 15.0


class AuthServiceError(Exception):
    """A Supabase Auth call failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code

    @property
    def email_not_confirmed(self) -> bool:
        return (
            self.error_code == "email_not_confirmed"
            or self.message == "Email not confirmed"
        )


def _error_from_response(resp: httpx.Response) -> AuthServiceError:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = (
        body.get("msg")
        or body.get("error_description")
        or body.get("message")
        or body.get("error")
        or f"Auth request failed (status {resp.status_code})"
    )
    return AuthServiceError(
        message,
        status_code=resp.status_code,
        error_code=body.get("error_code") or body.get("code"),
    )


async def _request(
    method: str,
    path: str,
    *,
    access_token: Optional[str] = None,
    admin: bool = False,
    json: Optional[dict] = None,
    params: Optional[dict] = None,
) -> dict:
    key = SUPABASE_SERVICE_ROLE_KEY if admin else SUPABASE_ANON_KEY
    headers = {
        "apikey": key,
        "Authorization": f"Bearer {access_token or key}",
    }

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.request(
                method,
                f"{SUPABASE_URL}/auth/v1{path}",
                headers=headers,
                json=json,
                params=params,
                timeout=AUTH_TIMEOUT,
            )
    except httpx.RequestError as exc:
        logger.error("Auth service unreachable (%s %s): %s", method, path, exc)
        raise AuthServiceError("Authentication service unavailable.") from exc

    if resp.status_code >= 400:
        error = _error_from_response(resp)
        logger.warning("Auth %s %s returned %d: %s", method, path, resp.status_code, error.message)
        raise error

    if resp.status_code == 204 or not resp.content:
        return {}
    return resp.json()


# ===================================================================
# Public flows
# ===================================================================

async def sign_up(
    email: str,
    password: str,
    metadata: dict[str, Any],
    redirect_to: Optional[str] = None,
) -> dict:
    """
    Create an auth user. Returns the user object.

    With e-mail confirmation on, GoTrue answers with the bare user;
    otherwise with a session that wraps it.
    """
    params = {"redirect_to": redirect_to} if redirect_to else None
    data = await _request(
        "POST",
        "/signup",
        json={"email": email, "password": password, "data": metadata},
        params=params,
    )
    return data.get("user") or data


async def sign_in_with_password(email: str, password: str) -> dict:
    """Password grant. Returns the session (access_token, refresh_token, user...)."""
    return await _request(
        "POST",
        "/token",
        params={"grant_type": "password"},
        json={"email": email, "password": password},
    )


async def refresh_session(refresh_token: str) -> dict:
    return await _request(
        "POST",
        "/token",
        params={"grant_type": "refresh_token"},
        json={"refresh_token": refresh_token},
    )


async def sign_out(access_token: str) -> None:
    """Revoke the session behind an access token."""
    await _request("POST", "/logout", access_token=access_token)


async def send_recovery_email(email: str, redirect_to: Optional[str] = None) -> None:
    """E-mail a password recovery code (and link) to the user."""
    params = {"redirect_to": redirect_to} if redirect_to else None
    await _request("POST", "/recover", json={"email": email}, params=params)


async def verify_otp(email: str, token: str, otp_type: str = "recovery") -> dict:
    """Exchange an e-mailed one-time code for a session."""
    return await _request(
        "POST",
        "/verify",
        json={"type": otp_type, "email": email, "token": token},
    )


async def verify_token_hash(token_hash: str, otp_type: str) -> dict:
    """Confirm a sign-up or e-mail change from the link's token_hash."""
    return await _request(
        "POST",
        "/verify",
        json={"type": otp_type, "token_hash": token_hash},
    )


async def get_user(access_token: str) -> dict:
    return await _request("GET", "/user", access_token=access_token)


# ===================================================================
# Admin API (service role)
# ===================================================================

async def admin_update_user(user_id: str, attributes: dict) -> dict:
    return await _request("PUT", f"/admin/users/{user_id}", admin=True, json=attributes)


async def admin_delete_user(user_id: str) -> None:
    await _request("DELETE", f"/admin/users/{user_id}", admin=True)
