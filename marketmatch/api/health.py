import logging

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from marketmatch.core.async_tasks import pending_task_count
from marketmatch.database import get_db
from marketmatch.models.listing import Listing
from marketmatch.models.match import PreferenceMatch
from marketmatch.models.preference import BuyerPreference
from marketmatch.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

_VERSION = "0.1.0"


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    listings = (await db.execute(select(func.count(Listing.id)))).scalar() or 0
    preferences = (await db.execute(select(func.count(BuyerPreference.id)))).scalar() or 0
    matches = (await db.execute(select(func.count(PreferenceMatch.id)))).scalar() or 0

    return HealthResponse(
        status="healthy",
        version=_VERSION,
        listings_count=listings,
        preferences_count=preferences,
        matches_count=matches,
        background_tasks=pending_task_count(),
    )


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe: verifies DB connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        logger.exception("Readiness check failed, database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unavailable"},
        )
