import pytest

from conftest import register_and_login

pytestmark = pytest.mark.anyio


async def test_register_login_me(client):
    headers = await register_and_login(client, "carol")
    resp = await client.get("/api/v1/auth/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["username"] == "carol"
    assert resp.json()["is_active"] is True


async def test_duplicate_username_conflict(client):
    await register_and_login(client, "dave")
    resp = await client.post(
        "/api/v1/auth/register",
        json={"username": "dave", "email": "other@example.com", "password": "pw123456"},
    )
    assert resp.status_code == 409


async def test_wrong_password(client):
    await register_and_login(client, "erin")
    resp = await client.post("/api/v1/auth/login", data={"username": "erin", "password": "nope"})
    assert resp.status_code == 401


async def test_invalid_token(client):
    resp = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.headers["X-Request-ID"]
    assert resp.json()["request_id"] == resp.headers["X-Request-ID"]


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    deps = resp.json()["dependencies"]
    assert deps["database"]["ok"] is True
    assert deps["redis"]["ok"] is True
    assert deps["gateway"]["ok"] is True
