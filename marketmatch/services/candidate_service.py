"""Relational pre-filter: which active preferences could plausibly match a listing.

Every rule treats an unset preference field as a wildcard. The filter is
deliberately permissive; it only gates entry into scoring.
"""

import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from marketmatch.core.geo import bounding_box
from marketmatch.models.listing import Listing
from marketmatch.models.preference import BuyerPreference

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 50


def _unset_or_equal(column, value) -> ColumnElement[bool]:
    return or_(column.is_(None), column == "", column == value)


def candidate_predicates(listing: Listing) -> list[ColumnElement[bool]]:
    """Build the WHERE clauses for one listing. Values are bound, never interpolated."""
    predicates: list[ColumnElement[bool]] = [BuyerPreference.status == "active"]

    predicates.append(_unset_or_equal(BuyerPreference.listing_type, listing.listing_type))

    # Each category level is only constrained when the listing is classified that finely.
    for column, value in (
        (BuyerPreference.extracted_category, listing.category),
        (BuyerPreference.extracted_subcategory, listing.subcategory),
        (BuyerPreference.extracted_subsubcategory, listing.subsubcategory),
    ):
        if value:
            predicates.append(_unset_or_equal(column, value))

    predicates.append(or_(BuyerPreference.max_price.is_(None), BuyerPreference.max_price >= listing.price))
    predicates.append(or_(BuyerPreference.min_price.is_(None), BuyerPreference.min_price <= listing.price))

    if listing.latitude is not None and listing.longitude is not None:
        min_lat, max_lat, min_lon, max_lon = bounding_box(float(listing.latitude), float(listing.longitude))
        predicates.append(
            or_(
                BuyerPreference.latitude.is_(None),
                BuyerPreference.longitude.is_(None),
                and_(
                    BuyerPreference.latitude.between(min_lat, max_lat),
                    BuyerPreference.longitude.between(min_lon, max_lon),
                ),
            )
        )

    return predicates


async def find_candidate_preferences(
    db: AsyncSession, listing: Listing, limit: int = MAX_CANDIDATES
) -> list[BuyerPreference]:
    """Return up to `limit` active preferences that may match, newest first."""
    query = (
        select(BuyerPreference)
        .where(*candidate_predicates(listing))
        .order_by(BuyerPreference.created_at.desc())
        .limit(limit)
    )
    result = await db.execute(query)
    candidates = list(result.scalars().all())
    logger.debug("Listing %s: %d candidate preferences", listing.id, len(candidates))
    return candidates
