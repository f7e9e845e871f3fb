"""
Supabase Client

Provides the initialized service-role Supabase client for the application.
Row access is decided by the route (caller identity from
get_current_user_id); the client itself bypasses RLS.
"""

from supabase import create_client, Client
from app.core.config import (
    SUPABASE_URL,
    SUPABASE_SERVICE_ROLE_KEY,
    validate_supabase_config,
)

# Module-level client, initialized lazily
_service_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the Supabase client using the service_role (admin) key.

    WARNING: This client BYPASSES Row Level Security.
    Route handlers use it after the caller's identity has been
    established by get_current_user_id.
    """
    global _service_client
    if _service_client is None:
        validate_supabase_config()
        _service_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
    return _service_client


def check_connection() -> dict:
    """
    Probe the Supabase connection with a cheap query on profiles.

    Returns a dict with connection status and project URL.
    Raises EnvironmentError if credentials are missing.
    Raises Exception if the query fails.
    """
    validate_supabase_config()
    client = get_service_client()
    client.table("profiles").select("id").limit(1).execute()
    return {
        "status": "connected",
        "supabase_url": SUPABASE_URL,
    }
