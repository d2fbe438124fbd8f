"""Buyer-preference matching: orchestrates filter -> score -> snapshot -> store.

A newly created listing is matched against standing buyer preferences in a
detached background task. Each (preference, listing) pair is stored at most
once; the unique constraint on the pair is what keeps concurrent or repeated
runs from producing duplicates, so an insert conflict is a successful no-op.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketmatch.config import settings
from marketmatch.core.async_tasks import fire_and_forget
from marketmatch.core.exceptions import (
    ForbiddenError,
    InvalidMatchStatusError,
    MatchNotFoundError,
    SellerLookupError,
)
from marketmatch.models.listing import LISTING_STATUSES, Listing
from marketmatch.models.match import MATCH_STATUSES, PreferenceMatch
from marketmatch.models.preference import BuyerPreference
from marketmatch.schemas.snapshot import ListingSnapshot
from marketmatch.services import preference_service
from marketmatch.services.candidate_service import find_candidate_preferences
from marketmatch.services.scoring_service import MATCH_THRESHOLD, MatchScore, build_match_reason, score_match
from marketmatch.services.snapshot_service import build_listing_snapshot

logger = logging.getLogger(__name__)

# "new" is only ever the initial state.
UPDATABLE_MATCH_STATUSES = ("viewed", "interested", "contacted", "dismissed")

_SORT_ORDERS = {
    "newest": (PreferenceMatch.matched_at.desc(),),
    "oldest": (PreferenceMatch.matched_at.asc(),),
    "score": (PreferenceMatch.match_score.desc(), PreferenceMatch.matched_at.desc()),
}


@dataclass
class MatchRunSummary:
    listing_id: str
    candidates: int = 0
    above_threshold: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0


@dataclass
class MatchView:
    """A stored match joined with what the read side needs to render it."""

    match: PreferenceMatch
    preference_text: str | None
    is_listing_available: bool

    @property
    def snapshot(self) -> ListingSnapshot:
        return ListingSnapshot.from_json(self.match.listing_snapshot)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Match inserts are not supported on dialect {dialect!r}")


async def insert_match(
    db: AsyncSession,
    preference: BuyerPreference,
    listing: Listing,
    score: int,
    reason: str,
    snapshot: ListingSnapshot,
) -> str | None:
    """Insert one match and bump the preference's counters in one transaction.

    Returns the new match id, or None when the pair was already matched. An
    existing row is never updated.
    """
    now = datetime.now(timezone.utc)
    table = PreferenceMatch.__table__
    insert = _insert_for(db)
    stmt = (
        insert(table)
        .values(
            id=str(uuid.uuid4()),
            preference_id=preference.id,
            buyer_id=preference.buyer_id,
            listing_id=listing.id,
            match_score=max(0, min(int(score), 100)),
            match_reason=reason,
            listing_snapshot=snapshot.to_json(),
            status="new",
            listing_status=listing.status,
            listing_status_updated_at=now,
            matched_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["preference_id", "listing_id"])
        .returning(table.c.id)
    )
    match_id = (await db.execute(stmt)).scalar_one_or_none()

    if match_id is None:
        await db.commit()
        return None

    await db.execute(
        update(BuyerPreference)
        .where(BuyerPreference.id == preference.id)
        .values(
            match_count=BuyerPreference.match_count + 1,
            last_matched_at=now,
            updated_at=BuyerPreference.updated_at,  # telemetry is not a user edit
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return match_id


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def rank_candidates(
    listing: Listing, candidates: list[BuyerPreference]
) -> list[tuple[BuyerPreference, MatchScore]]:
    """Score every candidate and keep those at or above the threshold, best first."""
    scored = []
    for preference in candidates:
        result = score_match(preference, listing)
        logger.debug(
            "Preference %s scored %d/100 for listing %s: %s",
            preference.id, result.score, listing.id, "; ".join(result.reasons),
        )
        if result.score >= MATCH_THRESHOLD:
            scored.append((preference, result))
    scored.sort(key=lambda pair: pair[1].score, reverse=True)
    return scored


async def _reload_after_rollback(
    db: AsyncSession, listing: Listing, pending: list[BuyerPreference]
) -> None:
    # A rollback expires every loaded instance; reload before touching attributes.
    await db.refresh(listing)
    for preference in pending:
        await db.refresh(preference)


async def run_matching_for_listing(db: AsyncSession, listing: Listing) -> MatchRunSummary:
    """Match one listing against standing preferences and persist new matches.

    Candidate failures are isolated: an error while snapshotting or storing
    one candidate skips it and the run continues with the rest.
    """
    summary = MatchRunSummary(listing_id=listing.id)
    candidates = await find_candidate_preferences(db, listing)
    summary.candidates = len(candidates)

    ranked = rank_candidates(listing, candidates)
    summary.above_threshold = len(ranked)

    for index, (preference, result) in enumerate(ranked):
        if index and settings.match_insert_pause_seconds > 0:
            await asyncio.sleep(settings.match_insert_pause_seconds)
        try:
            snapshot = await build_listing_snapshot(db, listing)
            reason = build_match_reason(preference, listing, result)
            match_id = await insert_match(db, preference, listing, result.score, reason, snapshot)
        except SellerLookupError as exc:
            summary.failed += 1
            logger.warning("Skipping match for preference %s: %s", preference.id, exc)
            continue
        except SQLAlchemyError:
            summary.failed += 1
            logger.exception("Failed to store match for preference %s, listing %s", preference.id, listing.id)
            await db.rollback()
            await _reload_after_rollback(db, listing, [p for p, _ in ranked[index + 1:]])
            continue
        except Exception:
            summary.failed += 1
            logger.exception("Failed to match preference %s to listing %s", preference.id, listing.id)
            continue

        if match_id is None:
            summary.duplicates += 1
        else:
            summary.inserted += 1

    logger.info(
        "Listing %s matching done: %d candidates, %d above threshold, %d new, %d duplicate, %d failed",
        listing.id, summary.candidates, summary.above_threshold,
        summary.inserted, summary.duplicates, summary.failed,
    )
    return summary


async def _match_listing_in_background(
    listing_id: str, session_factory: async_sessionmaker[AsyncSession]
) -> MatchRunSummary | None:
    try:
        async with session_factory() as db:
            listing = await db.get(Listing, listing_id)
            if listing is None:
                logger.warning("Listing %s vanished before matching ran", listing_id)
                return None
            return await run_matching_for_listing(db, listing)
    except Exception:
        logger.exception("Matching failed for listing %s", listing_id)
        return None


def process_new_listing(
    listing_id: str, session_factory: async_sessionmaker[AsyncSession]
) -> asyncio.Task | None:
    """Schedule matching for a new listing without blocking the caller.

    Nothing raised by the matching run reaches the caller.
    """
    if not settings.matching_enabled:
        return None
    return fire_and_forget(
        _match_listing_in_background(listing_id, session_factory),
        task_name=f"match_listing:{listing_id}",
    )


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

def _match_view_query():
    available = case(
        (Listing.status == "active", True),
        else_=False,
    )
    return (
        select(PreferenceMatch, BuyerPreference.preference_text, available.label("is_available"))
        .outerjoin(BuyerPreference, BuyerPreference.id == PreferenceMatch.preference_id)
        .outerjoin(Listing, Listing.id == PreferenceMatch.listing_id)
    )


def _to_views(rows) -> list[MatchView]:
    return [
        MatchView(match=row[0], preference_text=row[1], is_listing_available=bool(row[2]))
        for row in rows
    ]


async def list_matches(
    db: AsyncSession,
    buyer_id: str,
    status: str | None = None,
    preference_id: str | None = None,
    sort: str = "newest",
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[MatchView], int]:
    """List a buyer's matches with optional workflow-status and preference filters."""
    filters = [PreferenceMatch.buyer_id == buyer_id]
    if status:
        filters.append(PreferenceMatch.status == status)
    if preference_id:
        filters.append(PreferenceMatch.preference_id == preference_id)

    total = (
        await db.execute(select(func.count(PreferenceMatch.id)).where(*filters))
    ).scalar() or 0

    query = (
        _match_view_query()
        .where(*filters)
        .order_by(*_SORT_ORDERS.get(sort, _SORT_ORDERS["newest"]))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    return _to_views(result.all()), total


async def get_preference_matches(
    db: AsyncSession,
    preference_id: str,
    buyer_id: str,
    page: int = 1,
    page_size: int = 10,
) -> tuple[BuyerPreference, list[MatchView], int]:
    """Matches for one of the buyer's preferences, best score first."""
    preference = await preference_service.get_preference(db, preference_id, buyer_id)

    filters = [PreferenceMatch.preference_id == preference.id, PreferenceMatch.buyer_id == buyer_id]
    total = (
        await db.execute(select(func.count(PreferenceMatch.id)).where(*filters))
    ).scalar() or 0
    result = await db.execute(
        _match_view_query()
        .where(*filters)
        .order_by(*_SORT_ORDERS["score"])
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return preference, _to_views(result.all()), total


async def update_match_status(
    db: AsyncSession, match_id: str, buyer_id: str, new_status: str
) -> PreferenceMatch:
    """Apply a buyer workflow action to a match.

    viewed_at is stamped the first time the match is marked viewed and is
    never overwritten afterwards.
    """
    if new_status not in UPDATABLE_MATCH_STATUSES:
        raise InvalidMatchStatusError(new_status, UPDATABLE_MATCH_STATUSES)

    match = await db.get(PreferenceMatch, match_id)
    if match is None:
        raise MatchNotFoundError(match_id)
    if match.buyer_id != buyer_id:
        raise ForbiddenError("Match belongs to another buyer")

    now = datetime.now(timezone.utc)
    match.status = new_status
    if new_status == "viewed" and match.viewed_at is None:
        match.viewed_at = now
    match.updated_at = now
    await db.commit()
    await db.refresh(match)
    return match


async def get_match_stats(db: AsyncSession, buyer_id: str) -> dict:
    """Aggregate counts and score quality for a buyer's matches."""
    now = datetime.now(timezone.utc)
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    def _count_when(condition):
        return func.count(case((condition, 1)))

    columns = [
        func.count(PreferenceMatch.id),
        func.avg(PreferenceMatch.match_score),
        func.max(PreferenceMatch.match_score),
        _count_when(PreferenceMatch.matched_at >= week_ago),
        _count_when(PreferenceMatch.matched_at >= month_ago),
    ]
    columns += [_count_when(PreferenceMatch.status == s) for s in MATCH_STATUSES]
    columns += [_count_when(PreferenceMatch.listing_status == s) for s in LISTING_STATUSES]

    row = (
        await db.execute(select(*columns).where(PreferenceMatch.buyer_id == buyer_id))
    ).one()

    total, avg_score, best_score, this_week, this_month = row[:5]
    status_counts = row[5:5 + len(MATCH_STATUSES)]
    listing_counts = row[5 + len(MATCH_STATUSES):]

    return {
        "total_matches": int(total or 0),
        "by_status": {s: int(c or 0) for s, c in zip(MATCH_STATUSES, status_counts)},
        "by_listing_status": {s: int(c or 0) for s, c in zip(LISTING_STATUSES, listing_counts)},
        "match_quality": {
            "avg_score": round(float(avg_score), 2) if avg_score is not None else 0.0,
            "best_score": int(best_score or 0),
        },
        "recent_activity": {
            "matches_this_week": int(this_week or 0),
            "matches_this_month": int(this_month or 0),
        },
    }
