import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, Numeric, String, Text

from marketmatch.database import Base


def utcnow():
    return datetime.now(timezone.utc)


PREFERENCE_STATUSES = ("active", "inactive", "paused")


class BuyerPreference(Base):
    """A buyer's standing, natural-language want plus the fields extracted from it."""

    __tablename__ = "buyer_preferences"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    buyer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    preference_text = Column(Text, nullable=False)

    # Extracted fields, stored verbatim from the extractor
    extracted_keywords = Column(Text, default="[]")  # JSON array
    extracted_category = Column(String(100), nullable=True)
    extracted_subcategory = Column(String(100), nullable=True)
    extracted_subsubcategory = Column(String(100), nullable=True)
    extracted_features = Column(Text, default="[]")  # JSON array
    min_price = Column(Numeric(12, 2), nullable=True)
    max_price = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(10), nullable=False, default="USD")
    listing_type = Column(String(20), nullable=True)  # product | service | NULL = either

    # Optional location point; the full geocoder payload lives in location_data
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_name = Column(String(255), nullable=True)
    location_data = Column(Text, nullable=True)  # JSON: full_address, place_name, district, region, country

    status = Column(String(20), nullable=False, default="active")  # active | inactive | paused
    match_count = Column(Integer, nullable=False, default=0)
    last_matched_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_preferences_buyer", "buyer_id"),
        Index("idx_preferences_status_created", "status", "created_at"),
        Index("idx_preferences_category", "extracted_category"),
        Index("idx_preferences_location", "latitude", "longitude"),
    )
