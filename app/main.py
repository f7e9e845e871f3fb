"""
Vehicle Diagnostics Backend — FastAPI Entry Point

Initializes the FastAPI app, logging and CORS, and registers the REST
routers plus the /ws/telemetry WebSocket endpoint.
"""

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.auth import router as auth_router
from app.api.dtcs import router as dtcs_router
from app.api.health import router as health_router
from app.api.logs import router as logs_router
from app.api.performance import router as performance_router
from app.api.shops import router as shops_router
from app.api.telemetry_ws import router as telemetry_ws_router
from app.api.uploads import router as uploads_router
from app.api.users import router as users_router
from app.api.vehicles import router as vehicles_router
from app.core.config import APP_VERSION, CORS_ORIGINS, PROJECT_NAME
from app.core.logging import configure_logging
from app.core.security import get_current_user_id

configure_logging()

app = FastAPI(
    title=f"{PROJECT_NAME} API",
    description="Vehicle diagnostics backend with live telemetry fan-out",
    version=APP_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Register API routers ---
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(vehicles_router)
app.include_router(dtcs_router)
app.include_router(performance_router)
app.include_router(uploads_router)
app.include_router(logs_router)
app.include_router(shops_router)
app.include_router(telemetry_ws_router)


@app.get("/health")
async def health_check():
    """Health check endpoint. Returns service status."""
    return {"status": "ok"}


@app.get("/api/v1/me")
async def get_me(user_id: str = Depends(get_current_user_id)):
    """
    Protected endpoint — returns the authenticated user's ID.

    Requires a valid Supabase Bearer token in the Authorization header.
    """
    return {"user_id": user_id}
