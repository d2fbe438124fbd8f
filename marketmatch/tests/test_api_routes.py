"""End-to-end route tests through the FastAPI app with the in-memory database."""

import pytest

from marketmatch.core.async_tasks import drain_background_tasks
from marketmatch.services.extraction_service import ExtractedPreference

PREFIX = "/api/v1"
IPHONE_TEXT = "Want an iPhone under 500 dollars"

LISTING_BODY = {
    "title": "iPhone 14, barely used",
    "description": "Comes with charger",
    "price": "400",
    "currency": "USD",
    "category": "Electronics",
    "subcategory": "CellPhone & Accessories",
    "condition": "like_new",
    "listing_type": "product",
    "tags": ["iPhone", "Apple", "smartphone"],
    "location": "Kathmandu",
}


@pytest.fixture
def iphone_buyer_extraction(fake_extractor):
    fake_extractor.responses[IPHONE_TEXT] = ExtractedPreference(
        keywords=["iphone", "apple"],
        listing_type="product",
        category="Electronics",
        subcategory="CellPhone & Accessories",
        max_price=500,
        currency="USD",
    )
    return fake_extractor


async def _create_preference(client, auth_header, token, text=IPHONE_TEXT):
    resp = await client.post(f"{PREFIX}/preferences", json={"preference_text": text}, headers=auth_header(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _create_listing(client, auth_header, token, **overrides):
    resp = await client.post(f"{PREFIX}/listings", json={**LISTING_BODY, **overrides}, headers=auth_header(token))
    assert resp.status_code == 201, resp.text
    await drain_background_tasks()
    return resp.json()


# ---------------------------------------------------------------------------
# Health and auth
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get(f"{PREFIX}/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["listings_count"] == 0
    assert body["background_tasks"] == 0


@pytest.mark.asyncio
async def test_readiness(client):
    resp = await client.get(f"{PREFIX}/health/ready")
    assert resp.status_code == 200
    assert resp.json()["database"] == "connected"


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Token abc"}, {"Authorization": "Bearer not-a-jwt"}])
async def test_protected_routes_require_bearer_token(client, headers):
    resp = await client.get(f"{PREFIX}/matches", headers=headers)
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Full flow
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_listing_creation_matches_standing_preference(client, make_user, auth_header, iphone_buyer_extraction):
    _, seller_token = await make_user(name="seller")
    _, buyer_token = await make_user(name="buyer")
    preference = await _create_preference(client, auth_header, buyer_token)
    assert preference["extracted_keywords"] == ["iphone", "apple"]

    listing = await _create_listing(client, auth_header, seller_token)
    assert listing["enriched_tags"] == ["iphone", "apple", "smartphone"]

    resp = await client.get(f"{PREFIX}/matches", headers=auth_header(buyer_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["filters"] == {"status": None, "preference_id": None, "sort": "newest"}

    match = body["results"][0]
    assert match["listing_id"] == listing["id"]
    assert match["preference_text"] == IPHONE_TEXT
    assert match["match_score"] >= 85
    assert match["status"] == "new"
    assert match["is_listing_available"] is True
    assert match["availability_info"]["status"] == "active"
    assert match["listing_snapshot"]["seller_info"]["seller_name"] == "seller"
    assert "Like new" in match["match_reason"]

    resp = await client.get(f"{PREFIX}/preferences/{preference['id']}", headers=auth_header(buyer_token))
    assert resp.json()["match_count"] == 1


@pytest.mark.asyncio
async def test_sold_listing_updates_match_availability(client, make_user, auth_header, iphone_buyer_extraction):
    _, seller_token = await make_user()
    _, buyer_token = await make_user()
    await _create_preference(client, auth_header, buyer_token)
    listing = await _create_listing(client, auth_header, seller_token)

    resp = await client.put(
        f"{PREFIX}/listings/{listing['id']}/status",
        json={"status": "sold", "reason": "sold in person"},
        headers=auth_header(seller_token),
    )
    assert resp.status_code == 200
    assert resp.json() == {"listing_id": listing["id"], "status": "sold", "matches_updated": 1}

    match = (await client.get(f"{PREFIX}/matches", headers=auth_header(buyer_token))).json()["results"][0]
    assert match["listing_status"] == "sold"
    assert match["is_listing_available"] is False
    assert match["availability_info"]["message"] == "This item has been sold"
    assert len(match["availability_info"]["alternative_actions"]) == 3
    # The snapshot is frozen at match time
    assert match["listing_snapshot"]["status"] == "active"


@pytest.mark.asyncio
async def test_listing_status_owner_and_validation(client, make_user, auth_header):
    _, seller_token = await make_user()
    _, other_token = await make_user()
    listing = await _create_listing(client, auth_header, seller_token)
    url = f"{PREFIX}/listings/{listing['id']}/status"

    resp = await client.put(url, json={"status": "sold"}, headers=auth_header(other_token))
    assert resp.status_code == 403

    resp = await client.put(url, json={"status": "archived"}, headers=auth_header(seller_token))
    assert resp.status_code == 400

    resp = await client.put(f"{PREFIX}/listings/missing/status", json={"status": "sold"}, headers=auth_header(seller_token))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_listing_marks_removed(client, make_user, auth_header):
    _, seller_token = await make_user()
    listing = await _create_listing(client, auth_header, seller_token)

    resp = await client.delete(f"{PREFIX}/listings/{listing['id']}", headers=auth_header(seller_token))
    assert resp.status_code == 200
    assert resp.json()["status"] == "removed"

    resp = await client.get(f"{PREFIX}/listings/{listing['id']}")
    assert resp.json()["status"] == "removed"


@pytest.mark.asyncio
async def test_listing_validation(client, make_user, auth_header):
    _, seller_token = await make_user()
    resp = await client.post(
        f"{PREFIX}/listings", json={**LISTING_BODY, "price": "0"}, headers=auth_header(seller_token)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("field,value,expected", [
    ("condition", "poor", 201),
    ("condition", "broken", 422),
    ("listing_type", "service", 201),
    ("listing_type", "rental", 422),
])
async def test_listing_enums_follow_model_values(client, make_user, auth_header, field, value, expected):
    _, seller_token = await make_user()
    resp = await client.post(
        f"{PREFIX}/listings", json={**LISTING_BODY, field: value}, headers=auth_header(seller_token)
    )
    assert resp.status_code == expected, resp.text
    await drain_background_tasks()


@pytest.mark.asyncio
async def test_preference_status_filter_follows_model_values(client, make_user, auth_header):
    _, buyer_token = await make_user()
    headers = auth_header(buyer_token)
    resp = await client.get(f"{PREFIX}/preferences", params={"status": "inactive"}, headers=headers)
    assert resp.status_code == 200
    resp = await client.get(f"{PREFIX}/preferences", params={"status": "archived"}, headers=headers)
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_preference_crud(client, make_user, auth_header, iphone_buyer_extraction):
    _, buyer_token = await make_user()
    headers = auth_header(buyer_token)
    created = await _create_preference(client, auth_header, buyer_token)

    resp = await client.get(f"{PREFIX}/preferences", headers=headers)
    assert resp.json()["total"] == 1
    assert resp.json()["total_pages"] == 1

    resp = await client.put(f"{PREFIX}/preferences/{created['id']}", json={"status": "paused"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "paused"

    resp = await client.put(f"{PREFIX}/preferences/{created['id']}", json={}, headers=headers)
    assert resp.status_code == 400

    resp = await client.put(f"{PREFIX}/preferences/{created['id']}", json={"status": "bogus"}, headers=headers)
    assert resp.status_code == 422

    resp = await client.delete(f"{PREFIX}/preferences/{created['id']}", headers=headers)
    assert resp.status_code == 200

    resp = await client.get(f"{PREFIX}/preferences/{created['id']}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_preference_belongs_to_its_buyer(client, make_user, auth_header, iphone_buyer_extraction):
    _, buyer_token = await make_user()
    _, other_token = await make_user()
    created = await _create_preference(client, auth_header, buyer_token)

    resp = await client.get(f"{PREFIX}/preferences/{created['id']}", headers=auth_header(other_token))
    assert resp.status_code == 403

    resp = await client.get(f"{PREFIX}/matches/preference/{created['id']}", headers=auth_header(other_token))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_preference_with_location(client, make_user, auth_header):
    _, buyer_token = await make_user()
    resp = await client.post(
        f"{PREFIX}/preferences",
        json={
            "preference_text": "bicycle near Thamel",
            "location_data": {"latitude": 27.715, "longitude": 85.312, "place_name": "Thamel"},
        },
        headers=auth_header(buyer_token),
    )
    assert resp.status_code == 201
    assert resp.json()["location_data"]["place_name"] == "Thamel"

    resp = await client.post(
        f"{PREFIX}/preferences",
        json={"preference_text": "bicycle", "location_data": {"latitude": 123, "longitude": 85}},
        headers=auth_header(buyer_token),
    )
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_match_workflow_and_stats(client, make_user, auth_header, iphone_buyer_extraction):
    _, seller_token = await make_user()
    _, buyer_token = await make_user()
    headers = auth_header(buyer_token)
    preference = await _create_preference(client, auth_header, buyer_token)
    await _create_listing(client, auth_header, seller_token)

    resp = await client.get(f"{PREFIX}/matches/preference/{preference['id']}", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["preference_text"] == IPHONE_TEXT
    assert body["total"] == 1
    match_id = body["results"][0]["id"]

    first = await client.put(f"{PREFIX}/matches/{match_id}", json={"status": "viewed"}, headers=headers)
    assert first.status_code == 200
    assert first.json()["viewed_at"] is not None
    second = await client.put(f"{PREFIX}/matches/{match_id}", json={"status": "viewed"}, headers=headers)
    assert second.json()["viewed_at"] == first.json()["viewed_at"]

    resp = await client.put(f"{PREFIX}/matches/{match_id}", json={"status": "new"}, headers=headers)
    assert resp.status_code == 400

    _, other_token = await make_user()
    resp = await client.put(f"{PREFIX}/matches/{match_id}", json={"status": "dismissed"}, headers=auth_header(other_token))
    assert resp.status_code == 403

    resp = await client.put(f"{PREFIX}/matches/missing", json={"status": "viewed"}, headers=headers)
    assert resp.status_code == 404

    resp = await client.get(f"{PREFIX}/matches", params={"status": "viewed", "sort": "score"}, headers=headers)
    assert resp.json()["total"] == 1

    resp = await client.get(f"{PREFIX}/matches", params={"sort": "random"}, headers=headers)
    assert resp.status_code == 422

    stats = (await client.get(f"{PREFIX}/matches/stats", headers=headers)).json()
    assert stats["total_matches"] == 1
    assert stats["by_status"]["viewed"] == 1
    assert stats["recent_activity"]["matches_this_week"] == 1


@pytest.mark.asyncio
async def test_listing_creation_survives_matching_failure(client, make_user, auth_header, monkeypatch, caplog):
    from marketmatch.services import match_service

    async def _broken_filter(db, listing):
        raise RuntimeError("boom")

    monkeypatch.setattr(match_service, "find_candidate_preferences", _broken_filter)
    _, seller_token = await make_user()

    with caplog.at_level("ERROR", logger="marketmatch.services.match_service"):
        listing = await _create_listing(client, auth_header, seller_token)

    assert listing["status"] == "active"
    assert "Matching failed for listing" in caplog.text


@pytest.mark.asyncio
async def test_listing_creation_does_not_match_when_disabled(client, make_user, auth_header, iphone_buyer_extraction, monkeypatch):
    from marketmatch.config import settings

    monkeypatch.setattr(settings, "matching_enabled", False)
    _, seller_token = await make_user()
    _, buyer_token = await make_user()
    await _create_preference(client, auth_header, buyer_token)
    await _create_listing(client, auth_header, seller_token)

    resp = await client.get(f"{PREFIX}/matches", headers=auth_header(buyer_token))
    assert resp.json()["total"] == 0
