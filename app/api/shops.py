"""
Shops API — nearby repair shops via Google Places.

POST /api/v1/shops/nearby — Forward a nearby-search query string
"""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from app.services.places import PlacesError, PlacesNotConfiguredError, nearby_search

router = APIRouter(prefix="/api/v1/shops", tags=["shops"])


class NearbyShopsRequest(BaseModel):
    params: str = Field(
        ...,
        min_length=1,
        description="Places query string, e.g. location=52.1,4.3&radius=5000&type=car_repair",
    )


@router.post("/nearby", status_code=status.HTTP_200_OK)
async def nearby_shops(payload: NearbyShopsRequest) -> dict:
    """
    Return the raw Places nearby-search JSON.

    Returns:
        200: Places response body.
        422: Missing params string.
        503: Places API key not configured.
        502: Places API unreachable or returned an error.
    """
    try:
        return await nearby_search(payload.params)
    except PlacesNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Nearby shop search is not configured.",
        )
    except PlacesError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch nearby shops.",
        )
