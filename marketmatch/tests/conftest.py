"""Shared test fixtures for the marketmatch test suite.

Uses an in-memory SQLite database with StaticPool so all sessions share the
same connection (committed data is visible across sessions, including the
ones opened by background matching tasks).
"""

import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from marketmatch.config import settings
from marketmatch.core.async_tasks import drain_background_tasks
from marketmatch.database import Base, get_db, get_session_factory
from marketmatch.main import app
from marketmatch.models import *  # noqa: ensure all models are loaded for create_all
from marketmatch.services.extraction_service import ExtractedPreference, fallback_extraction, get_extractor


# ---------------------------------------------------------------------------
# In-memory SQLite test engine (shared via StaticPool)
# ---------------------------------------------------------------------------

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


class FakeExtractor:
    """Stands in for the OpenAI extractor; canned results keyed by preference text."""

    def __init__(self):
        self.responses: dict[str, ExtractedPreference] = {}
        self.calls: list[str] = []

    async def extract(self, preference_text: str) -> ExtractedPreference:
        self.calls.append(preference_text)
        if preference_text in self.responses:
            return self.responses[preference_text]
        return fallback_extraction(preference_text)


# ---------------------------------------------------------------------------
# Auto-use: create/drop tables for every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
async def _setup_db(monkeypatch):
    """Create all tables before each test, drop after. No pause between match inserts."""
    monkeypatch.setattr(settings, "match_insert_pause_seconds", 0)
    monkeypatch.setattr(settings, "matching_enabled", True)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await drain_background_tasks(timeout_seconds=2.0)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    """Yield a fresh AsyncSession for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestSession


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
async def client(fake_extractor):
    """httpx AsyncClient wired to the FastAPI app with test DB override."""
    import httpx

    async def _override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSession
    app.dependency_overrides[get_extractor] = lambda: fake_extractor

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def auth_header():
    """Return a callable that builds an Authorization header from a JWT."""
    def _build(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}
    return _build


@pytest.fixture
def make_user(db: AsyncSession):
    """Factory fixture: create a User and return (user, jwt_token)."""
    from marketmatch.core.auth import create_access_token
    from marketmatch.models.user import User

    async def _make(name: str = None, phone: str | None = "+1-555-0100"):
        name = name or f"test-user-{_new_id()[:8]}"
        user = User(
            id=_new_id(),
            name=name,
            email=f"{name}-{_new_id()[:6]}@test.com",
            phone=phone,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        token = create_access_token(user.id, user.name)
        return user, token

    return _make


@pytest.fixture
def make_listing(db: AsyncSession):
    """Factory fixture: create a Listing directly, bypassing matching."""
    from marketmatch.models.listing import Listing

    async def _make(seller_id: str, price: float = 400, **kwargs):
        now = datetime.now(timezone.utc)
        listing = Listing(
            id=_new_id(),
            seller_id=seller_id,
            title=kwargs.get("title", f"Test Listing {_new_id()[:6]}"),
            description=kwargs.get("description", ""),
            price=Decimal(str(price)),
            currency=kwargs.get("currency", "USD"),
            category=kwargs.get("category", "Electronics"),
            subcategory=kwargs.get("subcategory", "CellPhone & Accessories"),
            subsubcategory=kwargs.get("subsubcategory", ""),
            condition=kwargs.get("condition", "new"),
            listing_type=kwargs.get("listing_type", "product"),
            tags=json.dumps(kwargs.get("tags", [])),
            enriched_tags=json.dumps(kwargs.get("enriched_tags", ["iphone", "apple", "smartphone"])),
            is_negotiable=kwargs.get("is_negotiable", True),
            location=kwargs.get("location", ""),
            latitude=kwargs.get("latitude"),
            longitude=kwargs.get("longitude"),
            place_name=kwargs.get("place_name"),
            status=kwargs.get("status", "active"),
            expires_at=kwargs.get("expires_at", now + timedelta(days=30)),
            created_at=now,
            updated_at=now,
        )
        db.add(listing)
        await db.commit()
        await db.refresh(listing)
        return listing

    return _make


@pytest.fixture
def make_preference(db: AsyncSession):
    """Factory fixture: create a BuyerPreference with already-extracted fields."""
    from marketmatch.models.preference import BuyerPreference

    async def _make(buyer_id: str, **kwargs):
        now = kwargs.get("created_at", datetime.now(timezone.utc))
        preference = BuyerPreference(
            id=_new_id(),
            buyer_id=buyer_id,
            preference_text=kwargs.get("preference_text", "Looking for an iPhone under 500"),
            extracted_keywords=json.dumps(kwargs.get("keywords", ["iphone", "apple"])),
            extracted_category=kwargs.get("category", "Electronics"),
            extracted_subcategory=kwargs.get("subcategory", "CellPhone & Accessories"),
            extracted_subsubcategory=kwargs.get("subsubcategory"),
            extracted_features=json.dumps(kwargs.get("features", [])),
            min_price=kwargs.get("min_price"),
            max_price=kwargs.get("max_price", 500),
            currency=kwargs.get("currency", "USD"),
            listing_type=kwargs.get("listing_type"),
            latitude=kwargs.get("latitude"),
            longitude=kwargs.get("longitude"),
            status=kwargs.get("status", "active"),
            match_count=0,
            created_at=now,
            updated_at=now,
        )
        db.add(preference)
        await db.commit()
        await db.refresh(preference)
        return preference

    return _make
