"""OIDC login flow entry points.

start_login and finish_login are the two halves of the Authorization Code
flow with PKCE. They share nothing but the user's session:

    UNAUTHENTICATED -> AWAITING_CALLBACK (authState/authNonce/authVerifier)
                    -> AUTHENTICATED (hsApiKey/user)

Any failure in finish_login leaves the user unauthenticated; the stale flow
state is overwritten by the next start_login.
"""

import logging
import time
from datetime import datetime, timezone

import httpx
from fastapi import Request
from fastapi.responses import RedirectResponse

from headplane_auth.core.auth.discovery import resolve_provider_metadata
from headplane_auth.domain.errors import DownstreamApiError, MissingFlowStateError, TokenValidationError
from headplane_auth.core.auth.oidc import (
    build_authorization_url,
    ensure_no_challenge,
    exchange_code,
    process_token_response,
    validate_callback,
)
from headplane_auth.core.auth.pkce import new_flow_state
from headplane_auth.domain.models.oidc import FlowState, OIDCConfig, SessionUser
from headplane_auth.infrastructure.headscale.client import HeadscaleClient
from headplane_auth.infrastructure.session.store import Session, SessionStore

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/admin/oidc/callback"
HOME_PATH = "/"
LANDING_PATH = "/machines"

# Session keys
API_KEY = "hsApiKey"
USER = "user"
AUTH_STATE = "authState"
AUTH_NONCE = "authNonce"
AUTH_VERIFIER = "authVerifier"
AUTH_ISSUED_AT = "authIssuedAt"
FLOW_STATE_KEYS = (AUTH_STATE, AUTH_NONCE, AUTH_VERIFIER, AUTH_ISSUED_AT)


def build_callback_url(request: Request) -> str:
    """Derive the externally visible callback URL for a request.

    Scheme and host are taken verbatim from X-Forwarded-Proto and Host, so
    this is only safe behind a reverse proxy that sets both headers. The
    scheme defaults to http when X-Forwarded-Proto is absent.
    """
    forwarded_proto = request.headers.get("x-forwarded-proto")
    scheme = "http"
    if forwarded_proto:
        scheme = forwarded_proto.split(",")[0].strip().rstrip(":").lower() or "http"

    host = request.headers.get("host") or request.url.netloc
    return f"{scheme}://{host}{CALLBACK_PATH}"


async def _redirect(url: str, session: Session, session_store: SessionStore) -> RedirectResponse:
    response = RedirectResponse(url, status_code=302)
    await session_store.commit_session(session, response)
    return response


def _read_flow_state(session: Session, ttl_seconds: int) -> FlowState:
    """Load the flow secrets stored by start_login.

    Raises:
        MissingFlowStateError: If any secret is absent or the flow is too old
    """
    state = session.get(AUTH_STATE)
    nonce = session.get(AUTH_NONCE)
    verifier = session.get(AUTH_VERIFIER)
    if not state or not nonce or not verifier:
        raise MissingFlowStateError("No OIDC state found in the session")

    issued_at = session.get(AUTH_ISSUED_AT)
    if not isinstance(issued_at, int) or time.time() - issued_at > ttl_seconds:
        raise MissingFlowStateError("OIDC login has expired, please sign in again")

    return FlowState(state=state, nonce=nonce, code_verifier=verifier, issued_at=issued_at)


def _expiration_timestamp(exp: int) -> str:
    """Convert an exp claim to an ISO 8601 UTC timestamp with milliseconds"""
    try:
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, ValueError, OSError) as e:
        raise TokenValidationError(f"ID token exp is out of range: {exp}") from e
    return expires_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def start_login(
    config: OIDCConfig,
    request: Request,
    session_store: SessionStore,
    http: httpx.AsyncClient,
) -> RedirectResponse:
    """Start the OIDC login flow.

    Args:
        config: OIDC configuration
        request: Incoming request (session cookie and forwarding headers)
        session_store: Store holding the user's session
        http: HTTP client for provider discovery

    Returns:
        302 redirect to the provider's authorization endpoint, or to the
        home page when the session is already authenticated

    Raises:
        DiscoveryError: If provider metadata cannot be resolved
    """
    session = await session_store.get_session(request.headers.get("cookie"))
    if session.has(API_KEY):
        return await _redirect(HOME_PATH, session, session_store)

    metadata = await resolve_provider_metadata(config.issuer, http)

    flow = new_flow_state()
    callback_url = build_callback_url(request)
    auth_url = build_authorization_url(metadata, config.client, callback_url, flow)

    session.set(AUTH_STATE, flow.state)
    session.set(AUTH_NONCE, flow.nonce)
    session.set(AUTH_VERIFIER, flow.code_verifier)
    session.set(AUTH_ISSUED_AT, flow.issued_at)

    logger.info(f"OIDC login initiated: issuer={metadata.issuer}, redirect_uri={callback_url}")
    return await _redirect(auth_url, session, session_store)


async def finish_login(
    config: OIDCConfig,
    request: Request,
    session_store: SessionStore,
    http: httpx.AsyncClient,
    headscale: HeadscaleClient,
) -> RedirectResponse:
    """Complete the OIDC login flow from the provider callback.

    The flow secrets are read from the session before any network call, so
    a callback without a prior start_login never reaches the provider.

    Args:
        config: OIDC configuration
        request: Callback request (query string, cookie and forwarding headers)
        session_store: Store holding the user's session
        http: HTTP client for discovery, token exchange and JWKS
        headscale: Headscale API client used to mint the API key

    Returns:
        302 redirect to the landing page with the authenticated session

    Raises:
        MissingFlowStateError: If the session has no usable flow state
        DiscoveryError: If provider metadata cannot be resolved
        CallbackValidationError: If the callback fails validation
        ProviderChallengeError: If the token endpoint sends a challenge
        TokenValidationError: If the token response or ID token is invalid
        DownstreamApiError: If the API key cannot be minted
    """
    session = await session_store.get_session(request.headers.get("cookie"))
    if session.has(API_KEY):
        return await _redirect(HOME_PATH, session, session_store)

    flow = _read_flow_state(session, config.flow_ttl_seconds)
    metadata = await resolve_provider_metadata(config.issuer, http)
    client = config.client

    parameters = validate_callback(metadata, client, str(request.url), flow.state)
    logger.info("OIDC callback validated")

    callback_url = build_callback_url(request)
    token_response = await exchange_code(
        metadata, client, parameters, callback_url, flow.code_verifier, http
    )
    ensure_no_challenge(token_response)

    claims = await process_token_response(
        metadata,
        client,
        token_response,
        flow.nonce,
        http,
        clock_skew_seconds=config.clock_skew_seconds,
    )

    key_response = await headscale.post(
        "v1/apikey",
        config.root_key,
        {"expiration": _expiration_timestamp(claims.exp)},
    )
    api_key = key_response.get("apiKey") if isinstance(key_response, dict) else None
    if not api_key or not isinstance(api_key, str):
        raise DownstreamApiError("Headscale did not return an API key")

    user = SessionUser.from_claims(claims)
    for key in FLOW_STATE_KEYS:
        session.unset(key)
    session.regenerate()
    session.set(API_KEY, api_key)
    session.set(USER, user.to_session())

    logger.info(f"OIDC login completed for subject {claims.sub}")
    return await _redirect(LANDING_PATH, session, session_store)
