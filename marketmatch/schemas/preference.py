from datetime import datetime

from pydantic import BaseModel, Field

from marketmatch.models.preference import PREFERENCE_STATUSES
from marketmatch.schemas.common import LocationData, PaginatedResponse

PREFERENCE_STATUS_PATTERN = "^(" + "|".join(PREFERENCE_STATUSES) + ")$"


class PreferenceCreateRequest(BaseModel):
    preference_text: str = Field(..., min_length=1, max_length=1000)
    location_data: LocationData | None = None


class PreferenceUpdateRequest(BaseModel):
    preference_text: str | None = Field(default=None, min_length=1, max_length=1000)
    location_data: LocationData | None = None  # Explicit null clears the location
    status: str | None = Field(default=None, pattern=PREFERENCE_STATUS_PATTERN)


class PreferenceResponse(BaseModel):
    id: str
    buyer_id: str
    preference_text: str
    extracted_keywords: list[str]
    extracted_category: str | None = None
    extracted_subcategory: str | None = None
    extracted_subsubcategory: str | None = None
    extracted_features: list[str] = []
    min_price: float | None = None
    max_price: float | None = None
    currency: str
    listing_type: str | None = None
    location_data: dict | None = None
    status: str
    match_count: int
    last_matched_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PreferenceListResponse(PaginatedResponse):
    results: list[PreferenceResponse]
