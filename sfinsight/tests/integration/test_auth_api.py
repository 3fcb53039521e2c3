from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sfinsight.tests.utils.auth import TEST_PASSWORD, create_test_user


_REGISTER = {
    "username": "ada",
    "password": "analytical-engine",
    "email": "ada@example.com",
    "name": "Ada Lovelace",
}


@pytest.mark.asyncio
async def test_register_then_read_current_user(api_client) -> None:
    response = await api_client.post("/api/register", json=_REGISTER)
    assert response.status_code == 201
    session = response.json()
    assert session["user"]["username"] == "ada"
    assert session["api_key"]
    assert "password" not in str(session["user"]).lower()

    me = await api_client.get("/api/user", headers={"Authorization": f"Bearer {session['api_key']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "ada@example.com"


@pytest.mark.asyncio
async def test_duplicate_registration_conflicts(api_client) -> None:
    assert (await api_client.post("/api/register", json=_REGISTER)).status_code == 201
    response = await api_client.post("/api/register", json={**_REGISTER, "email": "other@example.com"})
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_login_issues_a_working_key(api_client) -> None:
    await create_test_user(username="grace")
    response = await api_client.post("/api/login", json={"username": "grace", "password": TEST_PASSWORD})
    assert response.status_code == 200
    api_key = response.json()["api_key"]

    me = await api_client.get("/api/user", headers={"Authorization": f"Bearer {api_key}"})
    assert me.json()["username"] == "grace"


@pytest.mark.asyncio
async def test_login_with_wrong_password_is_rejected(api_client) -> None:
    await create_test_user(username="grace")
    response = await api_client.post("/api/login", json={"username": "grace", "password": "nope-nope-nope"})
    assert response.status_code == 401
    body = response.json()
    assert body["error"]["code"] == "AUTH_INVALID_CREDENTIALS"
    assert body["meta"]["request_id"] == response.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_logout_revokes_the_key(api_client) -> None:
    _user_id, headers, _raw_key = await create_test_user()
    assert (await api_client.get("/api/user", headers=headers)).status_code == 200

    response = await api_client.post("/api/logout", headers=headers)
    assert response.status_code == 204

    after = await api_client.get("/api/user", headers=headers)
    assert after.status_code == 401
    assert after.json()["error"]["code"] == "AUTH_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_missing_revoked_and_expired_keys_are_unauthorized(api_client) -> None:
    _, revoked_headers, _ = await create_test_user(key_revoked=True)
    _, expired_headers, _ = await create_test_user(
        key_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)
    )

    for headers in ({}, {"Authorization": "Bearer not-a-key"}, revoked_headers, expired_headers):
        response = await api_client.get("/api/orgs", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client) -> None:
    response = await api_client.get("/api/health", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-Id"] == "req-123"
    assert response.json()["demo_mode"] is True


@pytest.mark.asyncio
async def test_invalid_payload_uses_error_envelope(api_client) -> None:
    response = await api_client.post("/api/register", json={"username": "x"})
    assert response.status_code == 422
    body = response.json()
    assert body["error"]["code"] == "REQUEST_VALIDATION_ERROR"
    assert body["error"]["details"]["errors"]
    assert body["meta"]["request_id"]


@pytest.mark.asyncio
async def test_openapi_marks_only_public_routes_as_anonymous(api_client) -> None:
    schema = (await api_client.get("/openapi.json")).json()
    assert schema["components"]["securitySchemes"]["BearerAuth"]["scheme"] == "bearer"
    assert schema["paths"]["/api/login"]["post"]["security"] == []
    assert schema["paths"]["/api/orgs"]["get"]["security"] == [{"BearerAuth": []}]
