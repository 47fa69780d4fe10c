"""API tests: auth, sessions, preferences, devices, /me, categories."""

import pytest
from httpx import AsyncClient

from app.config import settings
from app.core.auth import create_access_token

from conftest import TOKEN_B


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_requires_bearer_token(client: AsyncClient, clean_db):
    resp = await client.get("/api/v1/prefs")
    assert resp.status_code == 401
    resp = await client.get("/api/v1/prefs", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_first_request_provisions_user(client: AsyncClient, clean_db):
    headers = {"Authorization": f"Bearer {create_access_token('brand-new-subject')}"}
    resp = await client.get("/api/v1/me", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["user"]["id"] == "brand-new-subject"
    assert data["user"]["is_subscriber"] is False
    assert data["preferences"]["quiet_start"] == "22:00"
    assert data["active_session"] is None
    assert data["upcoming"] == []


@pytest.mark.asyncio
async def test_preferences_round_trip(client: AsyncClient, auth_headers: dict):
    resp = await client.get("/api/v1/prefs", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["frequency"] == 2
    assert resp.json()["quiet_end"] == "08:00"

    resp = await client.put(
        "/api/v1/prefs",
        json={"frequency": 3, "quiet_start": "21:00", "quiet_end": "09:00"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["preferences"]["frequency"] == 3
    assert data["preferences"]["quiet_start"] == "21:00"
    assert data["warnings"] is None


@pytest.mark.asyncio
async def test_preferences_validation_error(client: AsyncClient, auth_headers: dict):
    resp = await client.put("/api/v1/prefs", json={"frequency": 9, "quiet_end": "8am"}, headers=auth_headers)
    assert resp.status_code == 422
    data = resp.json()
    assert data["code"] == "validation_error"
    assert len(data["errors"]) == 2


@pytest.mark.asyncio
async def test_session_requires_subscription(client: AsyncClient, make_user, make_category):
    user_id = await make_user("free-user", subscriber=False)
    category_id, _ = await make_category()
    headers = {"Authorization": f"Bearer {create_access_token(user_id)}"}
    resp = await client.post("/api/v1/sessions", json={"category_id": category_id}, headers=headers)
    assert resp.status_code == 403
    assert resp.json()["code"] == "not_entitled"


@pytest.mark.asyncio
async def test_session_lifecycle(client: AsyncClient, auth_headers: dict, make_category):
    category_id, _ = await make_category()
    resp = await client.post(
        "/api/v1/sessions",
        json={"category_id": category_id, "frequency_per_day": 2, "duration_days": 7},
        headers=auth_headers,
    )
    assert resp.status_code == 201
    session_id = resp.json()["id"]
    assert resp.json()["status"] == "active"

    resp = await client.get("/api/v1/sessions/active", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["id"] == session_id

    resp = await client.get("/api/v1/me", headers=auth_headers)
    data = resp.json()
    assert data["active_session"]["id"] == session_id
    assert len(data["upcoming"]) == 10
    assert data["delivery_counts"]["scheduled"] >= 13

    resp = await client.post(f"/api/v1/sessions/{session_id}/end", json={"reason": "completed"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"

    resp = await client.post(f"/api/v1/sessions/{session_id}/end", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"

    resp = await client.get("/api/v1/sessions/active", headers=auth_headers)
    assert resp.json() is None


@pytest.mark.asyncio
async def test_session_unknown_category(client: AsyncClient, auth_headers: dict):
    resp = await client.post("/api/v1/sessions", json={"category_id": 12345}, headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_register_device(client: AsyncClient, auth_headers: dict):
    resp = await client.post(
        "/api/v1/devices",
        json={"token": TOKEN_B, "bundle_id": "app.soulbuddy.ios", "platform": "ios"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["is_active"] is True

    resp = await client.post(
        "/api/v1/devices",
        json={"token": "short", "bundle_id": "app.soulbuddy.ios"},
        headers=auth_headers,
    )
    assert resp.status_code == 422
    assert resp.json()["errors"] == ["Token must be a 64-character hexadecimal string"]


@pytest.mark.asyncio
async def test_patch_me(client: AsyncClient, auth_headers: dict):
    resp = await client.patch("/api/v1/me", json={"timezone": "Europe/Berlin", "locale": "de"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["timezone"] == "Europe/Berlin"
    assert resp.json()["locale"] == "de"

    resp = await client.patch("/api/v1/me", json={"timezone": "Nowhere/Special"}, headers=auth_headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_dev_subscription_toggle(client: AsyncClient, make_user):
    user_id = await make_user("toggle-user", subscriber=False)
    headers = {"Authorization": f"Bearer {create_access_token(user_id)}"}
    resp = await client.put("/api/v1/me/subscription", json={"status": "active"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"is_subscriber": True}


@pytest.mark.asyncio
async def test_categories_for_user_locale(client: AsyncClient, auth_headers: dict, make_category):
    await make_category("calm")
    await make_category("ruhe", locale="de")
    resp = await client.get("/api/v1/categories", headers=auth_headers)
    assert resp.status_code == 200
    assert [c["key"] for c in resp.json()] == ["calm"]
    resp = await client.get("/api/v1/categories?locale=de", headers=auth_headers)
    assert [c["key"] for c in resp.json()] == ["ruhe"]


@pytest.mark.asyncio
async def test_security_headers_and_optional_hsts(client: AsyncClient, monkeypatch):
    resp = await client.get("/health")
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert "Strict-Transport-Security" not in resp.headers

    monkeypatch.setattr(settings, "enable_hsts", True)
    resp = await client.get("/health")
    assert resp.headers["Strict-Transport-Security"] == "max-age=31536000; includeSubDomains"
