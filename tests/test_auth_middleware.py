"""
Backend Auth Middleware Tests

Tests that:
1. A valid Supabase access token resolves to the user via /auth/v1/user
2. Invalid/expired tokens, Supabase outages and malformed user payloads → 401
3. Missing or non-Bearer Authorization headers → 401 with WWW-Authenticate
4. /api/v1/me returns the authenticated user's ID
5. require_role admits permitted roles only

Supabase Auth is mocked at the httpx layer, so no credentials are needed.

Run with: pytest tests/test_auth_middleware.py -v
"""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.core.security import get_current_user, get_current_user_id, require_role
from app.main import app


USER_ID = str(uuid.uuid4())


def _mock_http(response=None, side_effect=None):
    """Build an httpx.AsyncClient stand-in usable as an async context manager."""
    mock_client = AsyncMock()
    mock_client.get = AsyncMock(return_value=response, side_effect=side_effect)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def client():
    """FastAPI test client for the diagnostics API."""
    return TestClient(app)


# ===================================================================
# get_current_user
# ===================================================================

class TestGetCurrentUser:

    @pytest.mark.asyncio
    async def test_valid_token_returns_user(self):
        mock_http = _mock_http(httpx.Response(200, json={
            "id": USER_ID,
            "email": "driver@example.com",
        }))

        with patch("httpx.AsyncClient", return_value=mock_http):
            user = await get_current_user("good-token")

        assert user["id"] == USER_ID
        headers = mock_http.get.await_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer good-token"
        assert "apikey" in headers
        assert mock_http.get.await_args.args[0].endswith("/auth/v1/user")

    @pytest.mark.asyncio
    async def test_rejected_token_raises_401(self):
        mock_http = _mock_http(httpx.Response(401, json={"msg": "invalid JWT"}))

        with patch("httpx.AsyncClient", return_value=mock_http):
            with pytest.raises(HTTPException) as exc_info:
                await get_current_user("expired-token")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid or expired authentication token."

    @pytest.mark.asyncio
    async def test_network_error_raises_401(self):
        mock_http = _mock_http(side_effect=httpx.ConnectError("connection refused"))

        with patch("httpx.AsyncClient", return_value=mock_http):
            with pytest.raises(HTTPException) as exc_info:
                await get_current_user("any-token")

        assert exc_info.value.status_code == 401
        assert "unavailable" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_payload_without_id_raises_401(self):
        mock_http = _mock_http(httpx.Response(200, json={"email": "driver@example.com"}))

        with patch("httpx.AsyncClient", return_value=mock_http):
            with pytest.raises(HTTPException) as exc_info:
                await get_current_user("odd-token")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_user_id_dependency(self):
        assert await get_current_user_id({"id": USER_ID}) == USER_ID


# ===================================================================
# Header handling through a protected route
# ===================================================================

class TestProtectedRoute:

    def test_no_auth_header_returns_401(self, client):
        resp = client.get("/api/v1/me")

        assert resp.status_code == 401
        assert "Missing authentication token" in resp.json()["detail"]
        assert resp.headers.get("www-authenticate") == "Bearer"

    def test_basic_auth_returns_401(self, client):
        resp = client.get("/api/v1/me", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401

    def test_raw_token_without_prefix_returns_401(self, client):
        resp = client.get("/api/v1/me", headers={"Authorization": "some-raw-token"})
        assert resp.status_code == 401

    def test_invalid_token_returns_401(self, client):
        mock_http = _mock_http(httpx.Response(401, json={"msg": "bad jwt"}))

        with patch("httpx.AsyncClient", return_value=mock_http):
            resp = client.get("/api/v1/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid or expired authentication token."

    def test_valid_token_returns_user_id(self, client):
        mock_http = _mock_http(httpx.Response(200, json={"id": USER_ID}))

        with patch("httpx.AsyncClient", return_value=mock_http):
            resp = client.get("/api/v1/me", headers={"Authorization": "Bearer good-token"})

        assert resp.status_code == 200
        assert resp.json() == {"user_id": USER_ID}
        print(f"  /me resolved user {USER_ID[:8]}")

    def test_override_dependency(self, client):
        app.dependency_overrides[get_current_user_id] = lambda: "test-user-123"
        try:
            resp = client.get("/api/v1/me")
        finally:
            app.dependency_overrides.pop(get_current_user_id, None)

        assert resp.status_code == 200
        assert resp.json() == {"user_id": "test-user-123"}

    def test_health_is_unprotected(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200


# ===================================================================
# require_role
# ===================================================================

def _profiles_client(data=None, side_effect=None) -> MagicMock:
    mock_client = MagicMock()
    execute = mock_client.table.return_value.select.return_value.eq.return_value.execute
    if side_effect is not None:
        execute.side_effect = side_effect
    else:
        execute.return_value = MagicMock(data=data)
    return mock_client


class TestRequireRole:

    @pytest.mark.asyncio
    async def test_permitted_role(self):
        check = require_role(["admin"])
        with patch("app.core.security.get_service_client",
                   return_value=_profiles_client([{"role": "admin"}])):
            assert await check(USER_ID) == "admin"

    @pytest.mark.asyncio
    async def test_missing_role_defaults_to_user(self):
        check = require_role(["user", "admin"])
        with patch("app.core.security.get_service_client",
                   return_value=_profiles_client([{"role": None}])):
            assert await check(USER_ID) == "user"

    @pytest.mark.asyncio
    async def test_forbidden_role(self):
        check = require_role(["admin"])
        with patch("app.core.security.get_service_client",
                   return_value=_profiles_client([{"role": "user"}])):
            with pytest.raises(HTTPException) as exc_info:
                await check(USER_ID)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_profile(self):
        check = require_role(["admin"])
        with patch("app.core.security.get_service_client", return_value=_profiles_client([])):
            with pytest.raises(HTTPException) as exc_info:
                await check(USER_ID)

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "User profile not found."

    @pytest.mark.asyncio
    async def test_lookup_error(self):
        check = require_role(["admin"])
        with patch("app.core.security.get_service_client",
                   return_value=_profiles_client(side_effect=Exception("db down"))):
            with pytest.raises(HTTPException) as exc_info:
                await check(USER_ID)

        assert exc_info.value.status_code == 500
