"""Middleware fixtures: tiny Starlette app behind the middleware under test."""
from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from batmodule.services.csrf_protection import CSRFProtection

ALL_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]


async def echo(request: Request):
    body = await request.body()
    return JSONResponse({"reached": True, "body": body.decode("utf-8")})


def _downstream_app() -> Starlette:
    return Starlette(routes=[Route("/{path:path}", echo, methods=ALL_METHODS)])


class _ScopeInjector:
    """Stands in for the session/auth layers: sets scope["session"] / state user."""

    def __init__(self, app, session=None, user=None):
        self.app = app
        self.session = session
        self.user = user

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            if self.session is not None:
                scope["session"] = self.session
            if self.user is not None:
                scope.setdefault("state", {})["user"] = self.user
        await self.app(scope, receive, send)


@pytest.fixture
def wrap():
    """wrap(middleware_factory, session=..., user=...) -> ASGI app over the echo app."""

    def _wrap(middleware_factory, session=None, user=None):
        return _ScopeInjector(middleware_factory(_downstream_app()), session=session, user=user)

    return _wrap


@pytest.fixture
def csrf():
    return CSRFProtection("test-csrf-secret")


@pytest_asyncio.fixture
async def make_client():
    """Factory: make_client(asgi_app) -> AsyncClient; closed at teardown."""
    clients = []

    def _make(asgi_app):
        client = AsyncClient(transport=ASGITransport(app=asgi_app), base_url="http://test")
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()
