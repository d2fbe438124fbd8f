from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from marketmatch.models.listing import CONDITIONS, LISTING_TYPES
from marketmatch.schemas.common import LocationData

_CONDITION_PATTERN = "^(" + "|".join(CONDITIONS) + ")$"
_LISTING_TYPE_PATTERN = "^(" + "|".join(LISTING_TYPES) + ")$"


class ListingCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=10)
    category: str = Field(..., min_length=1, max_length=100)
    subcategory: str = ""
    subsubcategory: str = ""
    condition: str = Field(default="new", pattern=_CONDITION_PATTERN)
    listing_type: str = Field(default="product", pattern=_LISTING_TYPE_PATTERN)
    tags: list[str] = []
    enriched_tags: list[str] | None = None  # Produced by the tagging pipeline; falls back to tags
    is_negotiable: bool = True
    location: str = ""
    location_data: LocationData | None = None
    expires_in_days: int | None = Field(default=None, ge=1, le=365)


class ListingStatusUpdateRequest(BaseModel):
    status: str
    reason: str | None = Field(default=None, max_length=255)


class ListingStatusUpdateResponse(BaseModel):
    listing_id: str
    status: str
    matches_updated: int


class ListingResponse(BaseModel):
    id: str
    seller_id: str
    title: str
    description: str
    price: str
    currency: str
    category: str
    subcategory: str
    subsubcategory: str
    condition: str
    listing_type: str
    tags: list[str]
    enriched_tags: list[str]
    is_negotiable: bool
    location: str
    latitude: float | None = None
    longitude: float | None = None
    place_name: str | None = None
    status: str
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
