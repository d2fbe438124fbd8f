from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketmatch.core.auth import get_current_user_id
from marketmatch.database import get_db
from marketmatch.models.match import MATCH_STATUSES
from marketmatch.schemas.common import total_pages
from marketmatch.schemas.match import (
    AvailabilityInfo,
    MatchFilters,
    MatchListResponse,
    MatchResponse,
    MatchStatsResponse,
    MatchStatusUpdateRequest,
    MatchStatusUpdateResponse,
    PreferenceMatchesResponse,
)
from marketmatch.services import match_service
from marketmatch.services.match_service import MatchView
from marketmatch.services.match_sync_service import get_availability_info

router = APIRouter(prefix="/matches", tags=["matches"])

_STATUS_PATTERN = "^(" + "|".join(MATCH_STATUSES) + ")$"


@router.get("", response_model=MatchListResponse)
async def list_matches(
    status: str | None = Query(None, pattern=_STATUS_PATTERN),
    preference_id: str | None = Query(None),
    sort: str = Query("newest", pattern="^(newest|oldest|score)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    views, total = await match_service.list_matches(
        db, current_user, status=status, preference_id=preference_id, sort=sort, page=page, page_size=page_size
    )
    return MatchListResponse(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages(total, page_size),
        results=[_match_to_response(v) for v in views],
        filters=MatchFilters(status=status, preference_id=preference_id, sort=sort),
    )


@router.get("/stats", response_model=MatchStatsResponse)
async def match_stats(
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    return await match_service.get_match_stats(db, current_user)


@router.get("/preference/{preference_id}", response_model=PreferenceMatchesResponse)
async def preference_matches(
    preference_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    preference, views, total = await match_service.get_preference_matches(
        db, preference_id, current_user, page=page, page_size=page_size
    )
    return PreferenceMatchesResponse(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages(total, page_size),
        preference_id=preference.id,
        preference_text=preference.preference_text,
        results=[_match_to_response(v) for v in views],
    )


@router.put("/{match_id}", response_model=MatchStatusUpdateResponse)
async def update_match_status(
    match_id: str,
    req: MatchStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    match = await match_service.update_match_status(db, match_id, current_user, req.status)
    return MatchStatusUpdateResponse(
        id=match.id,
        status=match.status,
        viewed_at=match.viewed_at,
        updated_at=match.updated_at,
    )


def _match_to_response(view: MatchView) -> MatchResponse:
    match = view.match
    return MatchResponse(
        id=match.id,
        preference_id=match.preference_id,
        preference_text=view.preference_text,
        listing_id=match.listing_id,
        match_score=match.match_score,
        match_reason=match.match_reason,
        listing_snapshot=view.snapshot,
        status=match.status,
        listing_status=match.listing_status,
        listing_status_updated_at=match.listing_status_updated_at,
        matched_at=match.matched_at,
        viewed_at=match.viewed_at,
        is_listing_available=view.is_listing_available,
        availability_info=AvailabilityInfo(**get_availability_info(match.listing_status)),
    )
