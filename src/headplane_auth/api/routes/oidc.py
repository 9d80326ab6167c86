"""OIDC Login Routes

Key Endpoints:
- GET /admin/oidc/start: Redirect to the identity provider
- GET /admin/oidc/callback: Provider callback, completes the login
- POST /admin/logout: Destroy the session
"""

import logging
from typing import AsyncIterator

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from headplane_auth.config.settings import get_settings
from headplane_auth.core.auth import finish_login, start_login
from headplane_auth.domain.models.oidc import OIDCConfig
from headplane_auth.infrastructure.headscale.client import HeadscaleClient
from headplane_auth.infrastructure.redis.client import get_redis_client
from headplane_auth.infrastructure.session.store import SessionStore

router = APIRouter(prefix="/admin", tags=["oidc"])
logger = logging.getLogger(__name__)


# ============================================================================
# Dependencies
# ============================================================================

def get_oidc_config() -> OIDCConfig:
    """OIDC configuration, or 404 when OIDC login is disabled."""
    config = get_settings().oidc_config()
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="OIDC login is not configured"
        )
    return config


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Per-request HTTP client for outbound calls, bounded by the configured timeout."""
    async with httpx.AsyncClient(timeout=get_settings().oidc_http_timeout) as client:
        yield client


async def get_session_store() -> SessionStore:
    redis_client = await get_redis_client()
    return SessionStore.from_settings(redis_client.get_client(), get_settings())


def get_headscale_client(http: httpx.AsyncClient = Depends(get_http_client)) -> HeadscaleClient:
    return HeadscaleClient(get_settings().headscale_url, http)


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/oidc/start")
async def oidc_start(
    request: Request,
    config: OIDCConfig = Depends(get_oidc_config),
    session_store: SessionStore = Depends(get_session_store),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> RedirectResponse:
    """Start OIDC login.

    Redirects to the provider's authorization endpoint, or to the home page
    when the session is already authenticated.
    """
    return await start_login(config, request, session_store, http)


@router.get("/oidc/callback")
async def oidc_callback(
    request: Request,
    config: OIDCConfig = Depends(get_oidc_config),
    session_store: SessionStore = Depends(get_session_store),
    http: httpx.AsyncClient = Depends(get_http_client),
    headscale: HeadscaleClient = Depends(get_headscale_client),
) -> RedirectResponse:
    """Handle the OIDC provider callback.

    Exchanges the authorization code, validates the ID token and stores a
    Headscale API key in the session.
    """
    return await finish_login(config, request, session_store, http, headscale)


@router.post("/logout")
async def logout(
    request: Request,
    session_store: SessionStore = Depends(get_session_store),
) -> RedirectResponse:
    """Destroy the session and return to the login page."""
    session = await session_store.get_session(request.headers.get("cookie"))
    response = RedirectResponse(get_settings().login_path, status_code=status.HTTP_302_FOUND)
    await session_store.destroy_session(session, response)
    logger.info("Session destroyed on logout")
    return response
