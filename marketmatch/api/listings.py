from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketmatch.core.auth import get_current_user_id
from marketmatch.database import get_db, get_session_factory
from marketmatch.schemas.listing import (
    ListingCreateRequest,
    ListingResponse,
    ListingStatusUpdateRequest,
    ListingStatusUpdateResponse,
)
from marketmatch.services import listing_service, match_service
from marketmatch.services.scoring_service import load_json_list

router = APIRouter(prefix="/listings", tags=["listings"])


@router.post("", response_model=ListingResponse, status_code=201)
async def create_listing(
    req: ListingCreateRequest,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    current_user: str = Depends(get_current_user_id),
):
    listing = await listing_service.create_listing(db, current_user, req)
    # Matching runs detached; the response never waits on it.
    match_service.process_new_listing(listing.id, session_factory)
    return _listing_to_response(listing)


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: str,
    db: AsyncSession = Depends(get_db),
):
    listing = await listing_service.get_listing(db, listing_id)
    return _listing_to_response(listing)


@router.put("/{listing_id}/status", response_model=ListingStatusUpdateResponse)
async def update_listing_status(
    listing_id: str,
    req: ListingStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    listing, updated = await listing_service.change_listing_status(
        db, listing_id, current_user, req.status, reason=req.reason
    )
    return ListingStatusUpdateResponse(listing_id=listing.id, status=listing.status, matches_updated=updated)


@router.delete("/{listing_id}", response_model=ListingStatusUpdateResponse)
async def remove_listing(
    listing_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    listing, updated = await listing_service.remove_listing(db, listing_id, current_user)
    return ListingStatusUpdateResponse(listing_id=listing.id, status=listing.status, matches_updated=updated)


def _listing_to_response(listing) -> ListingResponse:
    return ListingResponse(
        id=listing.id,
        seller_id=listing.seller_id,
        title=listing.title,
        description=listing.description or "",
        price=str(listing.price),
        currency=listing.currency,
        category=listing.category,
        subcategory=listing.subcategory or "",
        subsubcategory=listing.subsubcategory or "",
        condition=listing.condition,
        listing_type=listing.listing_type,
        tags=load_json_list(listing.tags),
        enriched_tags=load_json_list(listing.enriched_tags),
        is_negotiable=bool(listing.is_negotiable),
        location=listing.location or "",
        latitude=listing.latitude,
        longitude=listing.longitude,
        place_name=listing.place_name,
        status=listing.status,
        expires_at=listing.expires_at,
        created_at=listing.created_at,
        updated_at=listing.updated_at,
    )
