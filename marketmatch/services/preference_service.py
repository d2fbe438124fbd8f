import json
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmatch.core.exceptions import EmptyUpdateError, ForbiddenError, PreferenceNotFoundError
from marketmatch.models.match import PreferenceMatch
from marketmatch.models.preference import BuyerPreference
from marketmatch.schemas.common import LocationData
from marketmatch.schemas.preference import PreferenceCreateRequest, PreferenceUpdateRequest
from marketmatch.services.extraction_service import ExtractedPreference, PreferenceExtractor


def _apply_extraction(preference: BuyerPreference, extracted: ExtractedPreference) -> None:
    preference.extracted_keywords = json.dumps(extracted.keywords)
    preference.extracted_category = extracted.category
    preference.extracted_subcategory = extracted.subcategory
    preference.extracted_subsubcategory = extracted.subsubcategory
    preference.extracted_features = json.dumps(extracted.features)
    preference.min_price = extracted.min_price
    preference.max_price = extracted.max_price
    preference.currency = extracted.currency
    preference.listing_type = extracted.listing_type


def _apply_location(preference: BuyerPreference, location: LocationData | None) -> None:
    if location is None:
        preference.latitude = None
        preference.longitude = None
        preference.location_name = None
        preference.location_data = None
        return
    preference.latitude = location.latitude
    preference.longitude = location.longitude
    preference.location_name = location.place_name or None
    preference.location_data = location.model_dump_json()


async def create_preference(
    db: AsyncSession,
    buyer_id: str,
    req: PreferenceCreateRequest,
    extractor: PreferenceExtractor,
) -> BuyerPreference:
    """Store a buyer preference with the criteria extracted from its text."""
    extracted = await extractor.extract(req.preference_text)
    now = datetime.now(timezone.utc)

    preference = BuyerPreference(
        buyer_id=buyer_id,
        preference_text=req.preference_text,
        status="active",
        match_count=0,
        created_at=now,
        updated_at=now,
    )
    _apply_extraction(preference, extracted)
    _apply_location(preference, req.location_data)

    db.add(preference)
    await db.commit()
    await db.refresh(preference)
    return preference


async def get_preference(db: AsyncSession, preference_id: str, buyer_id: str) -> BuyerPreference:
    """Get one of the buyer's preferences; 404 if unknown, 403 if someone else's."""
    preference = await db.get(BuyerPreference, preference_id)
    if preference is None:
        raise PreferenceNotFoundError(preference_id)
    if preference.buyer_id != buyer_id:
        raise ForbiddenError("Preference belongs to another buyer")
    return preference


async def list_preferences(
    db: AsyncSession,
    buyer_id: str,
    status: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[BuyerPreference], int]:
    """List a buyer's preferences, newest first."""
    query = select(BuyerPreference).where(BuyerPreference.buyer_id == buyer_id)
    count_query = select(func.count(BuyerPreference.id)).where(BuyerPreference.buyer_id == buyer_id)

    if status:
        query = query.where(BuyerPreference.status == status)
        count_query = count_query.where(BuyerPreference.status == status)

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(BuyerPreference.created_at.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def update_preference(
    db: AsyncSession,
    preference_id: str,
    buyer_id: str,
    req: PreferenceUpdateRequest,
    extractor: PreferenceExtractor,
) -> BuyerPreference:
    """Update text, location or status. A text change re-runs extraction."""
    fields = req.model_fields_set
    if not fields:
        raise EmptyUpdateError()

    preference = await get_preference(db, preference_id, buyer_id)

    if "preference_text" in fields and req.preference_text is not None:
        if req.preference_text != preference.preference_text:
            extracted = await extractor.extract(req.preference_text)
            _apply_extraction(preference, extracted)
        preference.preference_text = req.preference_text
    if "location_data" in fields:
        _apply_location(preference, req.location_data)
    if "status" in fields and req.status is not None:
        preference.status = req.status

    preference.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(preference)
    return preference


async def delete_preference(db: AsyncSession, preference_id: str, buyer_id: str) -> None:
    """Delete a preference together with its matches."""
    preference = await get_preference(db, preference_id, buyer_id)
    # Delete matches explicitly; SQLite does not enforce ON DELETE CASCADE by default.
    await db.execute(delete(PreferenceMatch).where(PreferenceMatch.preference_id == preference.id))
    await db.delete(preference)
    await db.commit()


def load_location_data(preference: BuyerPreference) -> dict | None:
    if not preference.location_data:
        return None
    try:
        data = json.loads(preference.location_data)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None
