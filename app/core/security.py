"""
Security — Authentication and authorization dependencies.

Validates Bearer tokens against Supabase Auth and extracts
the authenticated user's ID for use in route handlers.

Usage in route handlers:
    from app.core.security import get_current_user_id

    @router.get("/protected")
    async def protected_route(user_id: str = Depends(get_current_user_id)):
        return {"user_id": user_id}

Admin-only routes chain require_role:

    @router.get("/admin", dependencies=[Depends(require_role(["admin"]))])
"""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import httpx

from app.core.config import SUPABASE_URL
from app.db.supabase_client import get_service_client

logger = logging.getLogger(__name__)

# HTTPBearer extracts the Bearer token from the Authorization header.
# auto_error=False so we can return a custom 401 message instead of
# FastAPI's default 403 for missing credentials.
_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    """Return the raw Bearer token, or raise 401 if none was sent."""
    if credentials is None:
        raise _unauthorized(
            "Missing authentication token. Provide a Bearer token in the Authorization header."
        )
    return credentials.credentials


async def get_current_user(token: str = Depends(get_bearer_token)) -> dict:
    """
    FastAPI dependency that validates the Supabase JWT and returns the user.

    Sends the token to Supabase Auth's /auth/v1/user endpoint, which
    returns the authenticated user's profile for a valid access token
    and 401 for an invalid or expired one.

    Raises:
        HTTPException(401): If the token is missing, invalid, or expired.

    Returns:
        dict: The auth user object (id, email, user_metadata, ...).
    """
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{SUPABASE_URL}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": _get_apikey(),
                },
                timeout=10.0,
            )
    except httpx.RequestError as exc:
        # Supabase unreachable
        logger.error("Auth service unreachable: %s", exc)
        raise _unauthorized("Authentication service unavailable. Please try again.") from exc

    if response.status_code != 200:
        raise _unauthorized("Invalid or expired authentication token.")

    try:
        user_data = response.json()
    except ValueError:
        raise _unauthorized("Authentication service returned an invalid response.")

    if not isinstance(user_data, dict) or not user_data.get("id"):
        raise _unauthorized("Invalid authentication token — no user ID found.")

    return user_data


async def get_current_user_id(user: dict = Depends(get_current_user)) -> str:
    """
    FastAPI dependency returning only the authenticated user's UUID string.

    Raises:
        HTTPException(401): If the token is missing, invalid, or expired.
    """
    return user["id"]


def require_role(roles: list[str]):
    """
    Build a dependency that admits only users whose profile role is in `roles`.

    The role is read from the profiles table (default 'user' when unset).
    Returns the role so handlers can branch on it if needed.

    Raises:
        HTTPException(403): Profile missing or role not permitted.
        HTTPException(500): Database error during the lookup.
    """

    async def _check_role(user_id: str = Depends(get_current_user_id)) -> str:
        client = get_service_client()
        try:
            result = (
                client.table("profiles")
                .select("role")
                .eq("id", user_id)
                .execute()
            )
        except Exception as exc:
            logger.error("Role lookup failed for user %s: %s", user_id[:8], exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Authorization failed.",
            )

        if not result.data:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User profile not found.",
            )

        user_role = result.data[0].get("role") or "user"
        if user_role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions.",
            )
        return user_role

    return _check_role


def _get_apikey() -> str:
    """
    Returns the Supabase anon key for API requests.

    The apikey header is required by Supabase's API gateway (Kong)
    for all requests, including authenticated ones. The anon key is
    safe to use here — actual access control is enforced by the
    Bearer token (JWT) and RLS policies.

    Lazy import to avoid circular dependency with config module.
    """
    from app.core.config import SUPABASE_ANON_KEY
    return SUPABASE_ANON_KEY
