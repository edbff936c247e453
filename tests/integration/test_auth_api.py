"""Registration, activation and token endpoints."""

import pytest
from httpx import AsyncClient

from agora.config import get_settings

REGISTER = {"name": "alice", "email": "Alice@Example.com", "password": "SecureP@ss1", "age": 30, "gender": 1}


async def _register_and_activate(client: AsyncClient, notifier) -> dict:
    response = await client.post("/api/v1/auth/register", json=REGISTER)
    assert response.status_code == 201
    activation = await client.put(f"/api/v1/auth/activate/{notifier.last_secret()}")
    assert activation.status_code == 204
    return response.json()


@pytest.mark.asyncio
async def test_register_creates_invited_account(client: AsyncClient, notifier) -> None:
    response = await client.post("/api/v1/auth/register", json=REGISTER)
    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "alice"
    assert data["email"] == "alice@example.com"
    assert data["state"] == "invited"
    assert "password" not in data
    assert notifier.sent[0]["to"] == "alice@example.com"


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient) -> None:
    await client.post("/api/v1/auth/register", json=REGISTER)
    response = await client.post("/api/v1/auth/register", json={**REGISTER, "name": "bob"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_register_weak_password(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/register", json={**REGISTER, "password": "short"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_register_invalid_payload(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/register", json={**REGISTER, "email": "not-an-email"})
    assert response.status_code == 422
    assert response.json()["detail"] == "Validation error"


@pytest.mark.asyncio
async def test_register_when_mail_is_down(client: AsyncClient, notifier) -> None:
    notifier.fail = True
    response = await client.post("/api/v1/auth/register", json=REGISTER)
    assert response.status_code == 502

    notifier.fail = False
    retry = await client.post("/api/v1/auth/register", json=REGISTER)
    assert retry.status_code == 201


@pytest.mark.asyncio
async def test_misconfigured_default_role(client: AsyncClient, notifier, monkeypatch) -> None:
    monkeypatch.setenv("AGORA_DEFAULT_ROLE", "citizen")
    get_settings.cache_clear()

    response = await client.post("/api/v1/auth/register", json=REGISTER)
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error", "error": "RoleNotFoundError"}
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_activation_link_is_single_use(client: AsyncClient, notifier) -> None:
    await client.post("/api/v1/auth/register", json=REGISTER)
    secret = notifier.last_secret()
    assert (await client.put(f"/api/v1/auth/activate/{secret}")).status_code == 204
    assert (await client.put(f"/api/v1/auth/activate/{secret}")).status_code == 404


@pytest.mark.asyncio
async def test_token_requires_activation(client: AsyncClient, notifier) -> None:
    await client.post("/api/v1/auth/register", json=REGISTER)
    credentials = {"email": REGISTER["email"], "password": REGISTER["password"]}

    assert (await client.post("/api/v1/auth/token", json=credentials)).status_code == 401

    await client.put(f"/api/v1/auth/activate/{notifier.last_secret()}")
    response = await client.post("/api/v1/auth/token", json=credentials)
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] > 0

    me = await client.get(
        "/api/v1/users/feed", headers={"Authorization": f"Bearer {data['access_token']}"}
    )
    assert me.status_code == 200


@pytest.mark.asyncio
async def test_token_wrong_password(client: AsyncClient, notifier) -> None:
    await _register_and_activate(client, notifier)
    response = await client.post("/api/v1/auth/token", json={"email": REGISTER["email"], "password": "WrongP@ss1"})
    assert response.status_code == 401
    unknown = await client.post("/api/v1/auth/token", json={"email": "x@example.com", "password": "WrongP@ss1"})
    assert unknown.status_code == 401
    assert unknown.json() == response.json()


@pytest.mark.asyncio
async def test_resend_activation(client: AsyncClient, notifier) -> None:
    await client.post("/api/v1/auth/register", json=REGISTER)
    first = notifier.last_secret()

    response = await client.post("/api/v1/auth/resend-activation", json={"email": REGISTER["email"]})
    assert response.status_code == 202
    assert len(notifier.sent) == 2

    assert (await client.put(f"/api/v1/auth/activate/{first}")).status_code == 404
    assert (await client.put(f"/api/v1/auth/activate/{notifier.last_secret()}")).status_code == 204


@pytest.mark.asyncio
async def test_resend_for_unknown_email_looks_the_same(client: AsyncClient, notifier) -> None:
    response = await client.post("/api/v1/auth/resend-activation", json={"email": "ghost@example.com"})
    assert response.status_code == 202
    assert notifier.sent == []
