"""API test fixtures: a registered user and CSRF helpers."""
from __future__ import annotations

import pytest
import pytest_asyncio

USER_EMAIL = "artisan@example.com"
USER_PASSWORD = "secret123"


async def _fetch_csrf_token(client) -> str:
    resp = await client.get("/api/auth/csrf")
    assert resp.status_code == 200
    return resp.json()["csrfToken"]


@pytest.fixture
def csrf_token_for():
    """await csrf_token_for(client) -> token bound to the client's current session."""
    return _fetch_csrf_token


@pytest_asyncio.fixture
async def registered_user(app):
    """User created directly through the service, no session involved."""
    return await app.state.auth_service.register(
        email=USER_EMAIL,
        password=USER_PASSWORD,
        first_name="Jean",
        last_name="Dupont",
        company_name="Dupont Maçonnerie",
    )


@pytest_asyncio.fixture
async def authenticated_client(app_client, registered_user):
    """
    httpx AsyncClient logged in through /api/auth/login.

    The session cookie lives in the client's cookie jar; fetch a fresh CSRF
    token after login since login regenerates the session id.
    """
    resp = await app_client.post(
        "/api/auth/login", json={"email": USER_EMAIL, "password": USER_PASSWORD}
    )
    assert resp.status_code == 200
    yield app_client


@pytest.fixture
def credentials():
    return {"email": USER_EMAIL, "password": USER_PASSWORD}
