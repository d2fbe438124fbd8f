from pydantic import BaseModel, Field


class PaginatedResponse(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int


class LocationData(BaseModel):
    """Geocoded point as supplied by the client (geocoding happens upstream)."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    place_name: str = ""
    full_address: str = ""
    district: str | None = None
    region: str | None = None
    country: str | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
    listings_count: int
    preferences_count: int
    matches_count: int
    background_tasks: int


def total_pages(total: int, page_size: int) -> int:
    return (total + page_size - 1) // page_size if page_size else 0
