import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from marketmatch.database import Base


def utcnow():
    return datetime.now(timezone.utc)


MATCH_STATUSES = ("new", "viewed", "interested", "contacted", "dismissed")


class PreferenceMatch(Base):
    """A scored (preference, listing) pair. At most one row per pair, ever."""

    __tablename__ = "buyer_preference_matches"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    preference_id = Column(
        String(36), ForeignKey("buyer_preferences.id", ondelete="CASCADE"), nullable=False
    )
    buyer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # Copied from the preference at insert
    listing_id = Column(String(36), ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)

    match_score = Column(Integer, nullable=False)
    match_reason = Column(Text, nullable=False)
    listing_snapshot = Column(Text, nullable=False)  # JSON, written once

    status = Column(String(20), nullable=False, default="new")  # new | viewed | interested | contacted | dismissed
    listing_status = Column(String(20), nullable=False, default="active")  # Mirror of listings.status
    listing_status_updated_at = Column(DateTime(timezone=True), nullable=True)

    matched_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("preference_id", "listing_id", name="uq_match_preference_listing"),
        CheckConstraint("match_score >= 0 AND match_score <= 100", name="ck_match_score_range"),
        Index("idx_matches_buyer", "buyer_id"),
        Index("idx_matches_preference", "preference_id"),
        Index("idx_matches_listing", "listing_id"),
        Index("idx_matches_buyer_status", "buyer_id", "status"),
        Index("idx_matches_matched_at", "matched_at"),
    )
