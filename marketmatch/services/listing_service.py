import json
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmatch.config import settings
from marketmatch.core.exceptions import ForbiddenError, InvalidListingStatusError, ListingNotFoundError
from marketmatch.models.listing import LISTING_STATUSES, Listing
from marketmatch.models.user import User
from marketmatch.schemas.listing import ListingCreateRequest
from marketmatch.services import match_sync_service


async def create_listing(
    db: AsyncSession, seller_id: str, req: ListingCreateRequest
) -> Listing:
    """Persist a new listing. Matching is scheduled separately by the caller."""
    now = datetime.now(timezone.utc)
    expires_in_days = req.expires_in_days or settings.listing_default_expiry_days
    enriched = req.enriched_tags if req.enriched_tags is not None else req.tags
    location = req.location_data

    listing = Listing(
        seller_id=seller_id,
        title=req.title,
        description=req.description,
        price=req.price,
        currency=req.currency,
        category=req.category,
        subcategory=req.subcategory,
        subsubcategory=req.subsubcategory,
        condition=req.condition,
        listing_type=req.listing_type,
        tags=json.dumps(req.tags),
        enriched_tags=json.dumps([t.strip().lower() for t in enriched if t.strip()]),
        is_negotiable=req.is_negotiable,
        location=req.location or (location.place_name if location else ""),
        latitude=location.latitude if location else None,
        longitude=location.longitude if location else None,
        place_name=location.place_name if location else None,
        full_address=location.full_address if location else None,
        district=location.district if location else None,
        region=location.region if location else None,
        country=location.country if location else None,
        expires_at=now + timedelta(days=expires_in_days),
        created_at=now,
        updated_at=now,
    )
    db.add(listing)
    await db.commit()
    await db.refresh(listing)
    return listing


async def get_listing(db: AsyncSession, listing_id: str) -> Listing:
    """Get a listing by ID or raise 404."""
    result = await db.execute(select(Listing).where(Listing.id == listing_id))
    listing = result.scalar_one_or_none()
    if not listing:
        raise ListingNotFoundError(listing_id)
    return listing


async def get_seller_contact(db: AsyncSession, seller_id: str) -> User | None:
    result = await db.execute(select(User).where(User.id == seller_id))
    return result.scalar_one_or_none()


async def change_listing_status(
    db: AsyncSession,
    listing_id: str,
    seller_id: str,
    new_status: str,
    reason: str | None = None,
) -> tuple[Listing, int]:
    """Move a listing to a new lifecycle status (owner only) and sync its matches.

    Returns the listing and the number of match rows whose mirror changed.
    """
    if new_status not in LISTING_STATUSES:
        raise InvalidListingStatusError(new_status, LISTING_STATUSES)

    listing = await get_listing(db, listing_id)
    if listing.seller_id != seller_id:
        raise ForbiddenError("Not the listing owner")

    if listing.status != new_status:
        listing.status = new_status
        listing.updated_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(listing)

    updated = await match_sync_service.sync_listing_status(db, listing.id, new_status, reason=reason)
    return listing, updated


async def remove_listing(db: AsyncSession, listing_id: str, seller_id: str) -> tuple[Listing, int]:
    """Soft-delete: the row stays so matches keep their foreign key."""
    return await change_listing_status(db, listing_id, seller_id, "removed", reason="removed by seller")
