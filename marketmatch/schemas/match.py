from datetime import datetime

from pydantic import BaseModel

from marketmatch.schemas.common import PaginatedResponse
from marketmatch.schemas.snapshot import ListingSnapshot


class AvailabilityInfo(BaseModel):
    status: str
    message: str
    alternative_actions: list[str]


class MatchResponse(BaseModel):
    id: str
    preference_id: str
    preference_text: str | None = None
    listing_id: str
    match_score: int
    match_reason: str
    listing_snapshot: ListingSnapshot
    status: str
    listing_status: str
    listing_status_updated_at: datetime | None = None
    matched_at: datetime
    viewed_at: datetime | None = None
    is_listing_available: bool
    availability_info: AvailabilityInfo


class MatchFilters(BaseModel):
    status: str | None = None
    preference_id: str | None = None
    sort: str


class MatchListResponse(PaginatedResponse):
    results: list[MatchResponse]
    filters: MatchFilters


class PreferenceMatchesResponse(PaginatedResponse):
    preference_id: str
    preference_text: str
    results: list[MatchResponse]


class MatchStatusUpdateRequest(BaseModel):
    status: str


class MatchStatusUpdateResponse(BaseModel):
    id: str
    status: str
    viewed_at: datetime | None = None
    updated_at: datetime


class MatchQuality(BaseModel):
    avg_score: float
    best_score: int


class RecentActivity(BaseModel):
    matches_this_week: int
    matches_this_month: int


class MatchStatsResponse(BaseModel):
    total_matches: int
    by_status: dict[str, int]
    by_listing_status: dict[str, int]
    match_quality: MatchQuality
    recent_activity: RecentActivity
