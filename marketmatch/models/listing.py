import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Numeric, String, Text

from marketmatch.database import Base


def utcnow():
    return datetime.now(timezone.utc)


LISTING_STATUSES = ("active", "sold", "expired", "removed")
LISTING_TYPES = ("product", "service")
CONDITIONS = ("new", "like_new", "good", "fair", "poor")


class Listing(Base):
    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="USD")
    category = Column(String(100), nullable=False)
    subcategory = Column(String(100), nullable=False, default="")  # "" = no finer classification
    subsubcategory = Column(String(100), nullable=False, default="")
    condition = Column(String(20), nullable=False, default="new")  # new | like_new | good | fair | poor
    listing_type = Column(String(20), nullable=False, default="product")  # product | service
    tags = Column(Text, default="[]")  # JSON array, seller supplied
    enriched_tags = Column(Text, default="[]")  # JSON array, machine derived keywords
    is_negotiable = Column(Boolean, nullable=False, default=True)

    # Location
    location = Column(String(255), default="")  # Free-text location as typed by the seller
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    place_name = Column(String(255), nullable=True)
    full_address = Column(String(512), nullable=True)
    district = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)

    status = Column(String(20), nullable=False, default="active")  # active | sold | expired | removed
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_listings_seller", "seller_id"),
        Index("idx_listings_category", "category", "subcategory", "subsubcategory"),
        Index("idx_listings_status", "status"),
        Index("idx_listings_expires", "status", "expires_at"),
    )
