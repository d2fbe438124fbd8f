"""Keep each match's mirror of its listing's lifecycle status current.

This module never decides when a listing changes status; it only propagates
transitions that happened elsewhere, sweeps listings past their expiry and
repairs drift left behind by missed sync calls.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketmatch.core.exceptions import InvalidListingStatusError
from marketmatch.models.listing import LISTING_STATUSES, Listing
from marketmatch.models.match import PreferenceMatch

logger = logging.getLogger(__name__)

AVAILABILITY = {
    "active": {
        "message": "This item is still available",
        "alternative_actions": ["Contact seller", "View listing details"],
    },
    "sold": {
        "message": "This item has been sold",
        "alternative_actions": [
            "Contact seller for similar items",
            "Find similar listings",
            "Save search for future matches",
        ],
    },
    "expired": {
        "message": "This listing has expired",
        "alternative_actions": [
            "Contact seller to renew listing",
            "Find similar active listings",
            "Set up saved search",
        ],
    },
    "removed": {
        "message": "This item was removed by the seller",
        "alternative_actions": [
            "Find similar listings",
            "Browse other sellers",
            "Adjust your preferences",
        ],
    },
}


@dataclass
class ExpirySweepResult:
    listings_expired: int
    matches_updated: int


def get_availability_info(listing_status: str) -> dict:
    """Buyer-facing guidance for a mirrored listing status."""
    if listing_status not in AVAILABILITY:
        raise InvalidListingStatusError(listing_status, LISTING_STATUSES)
    info = AVAILABILITY[listing_status]
    return {
        "status": listing_status,
        "message": info["message"],
        "alternative_actions": list(info["alternative_actions"]),
    }


async def sync_listing_status(
    db: AsyncSession,
    listing_id: str,
    new_status: str,
    reason: str | None = None,
) -> int:
    """Set the mirror on every match of a listing whose mirror differs.

    Returns the number of rows touched; repeating the call is a no-op.
    """
    if new_status not in LISTING_STATUSES:
        raise InvalidListingStatusError(new_status, LISTING_STATUSES)

    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(PreferenceMatch)
        .where(
            PreferenceMatch.listing_id == listing_id,
            PreferenceMatch.listing_status != new_status,
        )
        .values(listing_status=new_status, listing_status_updated_at=now, updated_at=now)
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()

    updated = result.rowcount or 0
    logger.info(
        "Listing %s -> %s: %d matches updated%s",
        listing_id, new_status, updated, f" ({reason})" if reason else "",
    )
    return updated


async def expire_stale_listings(db: AsyncSession, now: datetime | None = None) -> ExpirySweepResult:
    """Expire active listings past their expiry and propagate to their matches."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(Listing).where(
            Listing.status == "active",
            Listing.expires_at.is_not(None),
            Listing.expires_at < now,
        )
    )
    listings = list(result.scalars().all())
    if not listings:
        return ExpirySweepResult(listings_expired=0, matches_updated=0)

    for listing in listings:
        listing.status = "expired"
        listing.updated_at = now
    await db.commit()

    matches_updated = 0
    for listing in listings:
        matches_updated += await sync_listing_status(db, listing.id, "expired", reason="listing expired")

    logger.info("Expired %d listings and updated %d matches", len(listings), matches_updated)
    return ExpirySweepResult(listings_expired=len(listings), matches_updated=matches_updated)


async def reconcile_match_statuses(db: AsyncSession) -> dict[str, int]:
    """Repair mirrors that disagree with their live listing.

    Only the mirror columns are written. Returns corrected counts keyed by
    the status the mirrors were corrected to.
    """
    result = await db.execute(
        select(PreferenceMatch.id, Listing.status)
        .join(Listing, Listing.id == PreferenceMatch.listing_id)
        .where(PreferenceMatch.listing_status != Listing.status)
    )
    drifted: dict[str, list[str]] = {}
    for match_id, live_status in result.all():
        drifted.setdefault(live_status, []).append(match_id)

    if not drifted:
        return {}

    now = datetime.now(timezone.utc)
    counts: Counter[str] = Counter()
    for live_status, match_ids in drifted.items():
        outcome = await db.execute(
            update(PreferenceMatch)
            .where(
                PreferenceMatch.id.in_(match_ids),
                PreferenceMatch.listing_status != live_status,
            )
            .values(
                listing_status=live_status,
                listing_status_updated_at=now,
                updated_at=PreferenceMatch.updated_at,  # mirror columns only
            )
            .execution_options(synchronize_session="fetch")
        )
        counts[live_status] += outcome.rowcount or 0
    await db.commit()

    logger.info("Reconciled %d drifted matches: %s", sum(counts.values()), dict(counts))
    return dict(counts)
