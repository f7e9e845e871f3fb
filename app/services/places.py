"""
Places Service — Google Places nearby search for repair shops.
"""

import logging
from urllib.parse import parse_qsl

import httpx

from app.core.config import GOOGLE_PLACES_API_KEY, GOOGLE_PLACES_NEARBY_URL, is_places_configured

logger = logging.getLogger(__name__)

PLACES_TIMEOUT = 10.0


class PlacesError(Exception):
    """Raised when the Places API cannot be reached or rejects the query."""


class PlacesNotConfiguredError(PlacesError):
    """Raised when GOOGLE_PLACES_API_KEY is unset."""


async def nearby_search(query_string: str) -> dict:
    """
    Run a nearby search with the client's query string (location, radius,
    type, keyword...). The server's API key is appended; any key the
    client sent is dropped.

    Raises:
        PlacesError: Places not configured, unreachable, or non-200.
    """
    if not is_places_configured():
        raise PlacesNotConfiguredError("Google Places API key is not configured")

    params = [(k, v) for k, v in parse_qsl(query_string.lstrip("?")) if k != "key"]
    params.append(("key", GOOGLE_PLACES_API_KEY))

    try:
        async with httpx.AsyncClient(timeout=PLACES_TIMEOUT) as client:
            resp = await client.get(GOOGLE_PLACES_NEARBY_URL, params=params)
    except httpx.RequestError as exc:
        logger.error("Places request failed: %s", exc)
        raise PlacesError("Places API unreachable") from exc

    if resp.status_code != 200:
        logger.error("Places API returned HTTP %d", resp.status_code)
        raise PlacesError(f"Places API returned HTTP {resp.status_code}")

    return resp.json()
