"""Capture the listing and seller as they look at match time."""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from marketmatch.core.exceptions import SellerLookupError
from marketmatch.models.listing import Listing
from marketmatch.schemas.snapshot import ListingSnapshot, LocationInfo, SellerInfo
from marketmatch.services import listing_service
from marketmatch.services.scoring_service import load_json_list


def _location_info(listing: Listing) -> LocationInfo | None:
    fields = {
        "latitude": listing.latitude,
        "longitude": listing.longitude,
        "place_name": listing.place_name,
        "full_address": listing.full_address,
        "district": listing.district,
        "region": listing.region,
        "country": listing.country,
    }
    if all(value is None for value in fields.values()):
        return None
    return LocationInfo(**fields)


async def build_listing_snapshot(db: AsyncSession, listing: Listing) -> ListingSnapshot:
    """Build the immutable snapshot stored on a match.

    Raises SellerLookupError when the listing's seller cannot be resolved.
    """
    seller = await listing_service.get_seller_contact(db, listing.seller_id)
    if seller is None:
        raise SellerLookupError(listing.id, listing.seller_id)

    return ListingSnapshot(
        id=listing.id,
        title=listing.title,
        description=listing.description or "",
        price=str(listing.price),
        currency=listing.currency,
        category=listing.category,
        subcategory=listing.subcategory or "",
        subsubcategory=listing.subsubcategory or "",
        condition=listing.condition,
        location=listing.location or "",
        listing_type=listing.listing_type,
        enriched_tags=tuple(load_json_list(listing.enriched_tags)),
        is_negotiable=bool(listing.is_negotiable),
        status=listing.status,
        seller_info=SellerInfo(
            seller_id=seller.id,
            seller_name=seller.name,
            seller_email=seller.email,
            seller_phone=seller.phone,
        ),
        location_info=_location_info(listing),
        created_at=listing.created_at,
        expires_at=listing.expires_at,
        captured_at=datetime.now(timezone.utc),
    )
