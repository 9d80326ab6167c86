"""Fixtures for HTTP-level tests of the login routes."""

from typing import AsyncGenerator

import httpx
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from headplane_auth.api.routes.oidc import get_http_client, get_oidc_config, get_session_store
from headplane_auth.main import app

BASE_URL = "http://headplane.example.com"


@pytest_asyncio.fixture
async def client(provider, session_store, oidc_config) -> AsyncGenerator[AsyncClient, None]:
    """Test HTTP client with provider, Headscale and Redis overridden."""

    async def override_http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider.handler)) as http:
            yield http

    async def override_session_store():
        return session_store

    app.dependency_overrides[get_http_client] = override_http_client
    app.dependency_overrides[get_session_store] = override_session_store
    app.dependency_overrides[get_oidc_config] = lambda: oidc_config

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE_URL) as ac:
        yield ac

    app.dependency_overrides.clear()
