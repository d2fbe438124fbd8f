"""Immutable listing snapshot captured when a match is created.

Kept as typed models in-process; serialized to JSON only when written to
or read from the `listing_snapshot` column.
"""

from datetime import datetime

from pydantic import BaseModel


class SellerInfo(BaseModel):
    seller_id: str
    seller_name: str
    seller_email: str
    seller_phone: str | None = None

    model_config = {"frozen": True}


class LocationInfo(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    place_name: str | None = None
    full_address: str | None = None
    district: str | None = None
    region: str | None = None
    country: str | None = None

    model_config = {"frozen": True}


class ListingSnapshot(BaseModel):
    id: str
    title: str
    description: str
    price: str  # Decimal rendered as text so no precision is lost
    currency: str
    category: str
    subcategory: str
    subsubcategory: str
    condition: str
    location: str
    listing_type: str
    enriched_tags: tuple[str, ...]
    is_negotiable: bool
    status: str
    seller_info: SellerInfo
    location_info: LocationInfo | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
    captured_at: datetime

    model_config = {"frozen": True}

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "ListingSnapshot":
        return cls.model_validate_json(raw)
