from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketmatch.core.auth import get_current_user_id
from marketmatch.database import get_db
from marketmatch.schemas.common import total_pages
from marketmatch.schemas.preference import (
    PREFERENCE_STATUS_PATTERN,
    PreferenceCreateRequest,
    PreferenceListResponse,
    PreferenceResponse,
    PreferenceUpdateRequest,
)
from marketmatch.services import preference_service
from marketmatch.services.extraction_service import PreferenceExtractor, get_extractor
from marketmatch.services.scoring_service import load_json_list

router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.post("", response_model=PreferenceResponse, status_code=201)
async def create_preference(
    req: PreferenceCreateRequest,
    db: AsyncSession = Depends(get_db),
    extractor: PreferenceExtractor = Depends(get_extractor),
    current_user: str = Depends(get_current_user_id),
):
    preference = await preference_service.create_preference(db, current_user, req, extractor)
    return _preference_to_response(preference)


@router.get("", response_model=PreferenceListResponse)
async def list_preferences(
    status: str | None = Query(None, pattern=PREFERENCE_STATUS_PATTERN),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    preferences, total = await preference_service.list_preferences(db, current_user, status, page, page_size)
    return PreferenceListResponse(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages(total, page_size),
        results=[_preference_to_response(p) for p in preferences],
    )


@router.get("/{preference_id}", response_model=PreferenceResponse)
async def get_preference(
    preference_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    preference = await preference_service.get_preference(db, preference_id, current_user)
    return _preference_to_response(preference)


@router.put("/{preference_id}", response_model=PreferenceResponse)
async def update_preference(
    preference_id: str,
    req: PreferenceUpdateRequest,
    db: AsyncSession = Depends(get_db),
    extractor: PreferenceExtractor = Depends(get_extractor),
    current_user: str = Depends(get_current_user_id),
):
    preference = await preference_service.update_preference(db, preference_id, current_user, req, extractor)
    return _preference_to_response(preference)


@router.delete("/{preference_id}")
async def delete_preference(
    preference_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    await preference_service.delete_preference(db, preference_id, current_user)
    return {"status": "deleted", "id": preference_id}


def _preference_to_response(preference) -> PreferenceResponse:
    return PreferenceResponse(
        id=preference.id,
        buyer_id=preference.buyer_id,
        preference_text=preference.preference_text,
        extracted_keywords=load_json_list(preference.extracted_keywords),
        extracted_category=preference.extracted_category,
        extracted_subcategory=preference.extracted_subcategory,
        extracted_subsubcategory=preference.extracted_subsubcategory,
        extracted_features=load_json_list(preference.extracted_features),
        min_price=float(preference.min_price) if preference.min_price is not None else None,
        max_price=float(preference.max_price) if preference.max_price is not None else None,
        currency=preference.currency,
        listing_type=preference.listing_type,
        location_data=preference_service.load_location_data(preference),
        status=preference.status,
        match_count=preference.match_count or 0,
        last_matched_at=preference.last_matched_at,
        created_at=preference.created_at,
        updated_at=preference.updated_at,
    )
