"""OpenID Connect relying-party protocol operations.

Authorization Code flow with PKCE:
- Authorization request construction
- Authorization response (callback) validation
- Code-for-token exchange with client_secret_basic authentication
- OpenID token response processing (ID token signature, issuer, audience,
  nonce and lifetime validation)
"""

import base64
import logging
import secrets
import time
from typing import Optional
from urllib.parse import parse_qsl, quote_plus, urlencode, urlsplit, urlunsplit

import httpx
from jose import jwt, JWTError
from pydantic import ValidationError

from headplane_auth.core.auth.discovery import require_endpoint
from headplane_auth.domain.errors import (
    CallbackValidationError,
    DiscoveryError,
    ProviderChallengeError,
    TokenValidationError,
)
from headplane_auth.core.auth.pkce import CODE_CHALLENGE_METHOD, code_challenge
from headplane_auth.domain.models.oidc import (
    CallbackParameters,
    ClientIdentity,
    FlowState,
    IdTokenClaims,
    ProviderMetadata,
    TokenResponse,
)

logger = logging.getLogger(__name__)

SCOPE = "openid profile email"


def _now() -> int:
    """Current time in epoch seconds"""
    return int(time.time())


def _redact(value: Optional[str]) -> str:
    """Shorten a secret for logging"""
    if not value:
        return "<empty>"
    return f"{value[:8]}..."


# ============================================================================
# Authorization request
# ============================================================================

def build_authorization_url(
    metadata: ProviderMetadata,
    client: ClientIdentity,
    redirect_uri: str,
    flow: FlowState,
) -> str:
    """Build the authorization request URL.

    Query parameters already present on the authorization endpoint are kept;
    the protocol parameters replace any of the same name.

    Args:
        metadata: Provider metadata
        client: Client identity
        redirect_uri: Callback URL registered with the provider
        flow: Freshly generated state, nonce and code verifier

    Returns:
        Authorization URL to redirect the user agent to
    """
    params = {
        "client_id": client.client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": SCOPE,
        "code_challenge": code_challenge(flow.code_verifier),
        "code_challenge_method": CODE_CHALLENGE_METHOD,
        "state": flow.state,
        "nonce": flow.nonce,
    }

    parts = urlsplit(metadata.authorization_endpoint)
    existing = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query = urlencode(existing + list(params.items()))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


# ============================================================================
# Authorization response
# ============================================================================

def validate_callback(
    metadata: ProviderMetadata,
    client: ClientIdentity,
    callback_url: str,
    expected_state: str,
) -> CallbackParameters:
    """Validate the authorization response carried by the callback URL.

    Args:
        metadata: Provider metadata
        client: Client identity
        callback_url: Full URL the provider redirected the user agent to
        expected_state: State stored in the session when the flow started

    Returns:
        CallbackParameters with the authorization code

    Raises:
        CallbackValidationError: If the provider signalled an error, the state
            does not match, or the response is otherwise malformed
    """
    pairs = parse_qsl(urlsplit(callback_url).query, keep_blank_values=True)
    params: dict[str, str] = {}
    for key, value in pairs:
        if key in params:
            raise CallbackValidationError(f'Parameter "{key}" included more than once in the callback')
        params[key] = value

    iss = params.get("iss")
    if iss is not None and iss != metadata.issuer:
        raise CallbackValidationError("Unexpected iss parameter in the callback")
    if iss is None and metadata.authorization_response_iss_parameter_supported:
        raise CallbackValidationError("Missing iss parameter in the callback")

    state = params.get("state")
    if state is None:
        raise CallbackValidationError("Missing state parameter in the callback")
    if not secrets.compare_digest(state.encode(), expected_state.encode()):
        logger.warning(f"OIDC callback rejected: state mismatch (received {_redact(state)})")
        raise CallbackValidationError("State parameter mismatch")

    if "error" in params:
        error = params["error"]
        description = params.get("error_description")
        logger.warning(f"OIDC provider returned an error: {error} ({description or ''})")
        raise CallbackValidationError(
            "Invalid response from the OIDC provider",
            error=error,
            error_description=description,
        )

    if "id_token" in params or "access_token" in params:
        raise CallbackValidationError("Implicit and hybrid flow responses are not supported")

    code = params.get("code")
    if not code:
        raise CallbackValidationError("Missing authorization code in the callback")

    return CallbackParameters(code=code, state=state, iss=iss)


# ============================================================================
# Token exchange
# ============================================================================

def _client_auth(client: ClientIdentity, data: dict, headers: dict) -> None:
    """Apply token endpoint client authentication to a request"""
    if client.token_endpoint_auth_method == "client_secret_basic":
        credentials = f"{quote_plus(client.client_id, safe='')}:{quote_plus(client.client_secret, safe='')}"
        headers["Authorization"] = "Basic " + base64.b64encode(credentials.encode()).decode("ascii")
    else:
        data["client_id"] = client.client_id


async def exchange_code(
    metadata: ProviderMetadata,
    client: ClientIdentity,
    parameters: CallbackParameters,
    redirect_uri: str,
    code_verifier: str,
    http: httpx.AsyncClient,
) -> httpx.Response:
    """Exchange the authorization code at the token endpoint.

    Args:
        metadata: Provider metadata
        client: Client identity
        parameters: Validated callback parameters
        redirect_uri: Same redirect_uri used in the authorization request
        code_verifier: PKCE code verifier
        http: HTTP client used for the request

    Returns:
        Raw token endpoint response (processed by process_token_response)

    Raises:
        DiscoveryError: If the provider advertises no token endpoint
        TokenValidationError: If the token endpoint cannot be reached
    """
    token_endpoint = require_endpoint(metadata, "token_endpoint")

    data = {
        "grant_type": "authorization_code",
        "code": parameters.code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
    }
    headers = {"Accept": "application/json"}
    _client_auth(client, data, headers)

    try:
        return await http.post(token_endpoint, data=data, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"OIDC token exchange request failed: {e}")
        raise TokenValidationError("Unable to reach the OIDC token endpoint") from e


def parse_www_authenticate(response: httpx.Response) -> list[str]:
    """Return the authentication schemes challenged by a response, if any."""
    schemes = []
    for header in response.headers.get_list("www-authenticate"):
        for challenge in header.split(","):
            token = challenge.strip().split(" ", 1)[0]
            if token and "=" not in token:
                schemes.append(token.lower())
    return schemes


def ensure_no_challenge(response: httpx.Response) -> None:
    """Reject token endpoint responses carrying an authentication challenge.

    Raises:
        ProviderChallengeError: If a WWW-Authenticate challenge is present
    """
    challenges = parse_www_authenticate(response)
    if challenges:
        logger.error(f"OIDC token endpoint sent a challenge: {', '.join(challenges)}")
        raise ProviderChallengeError("Received a challenge from the OIDC provider", challenges)


# ============================================================================
# Token response
# ============================================================================

async def _fetch_jwks(metadata: ProviderMetadata, http: httpx.AsyncClient) -> dict:
    """Fetch the provider's JSON Web Key Set"""
    jwks_uri = require_endpoint(metadata, "jwks_uri")
    try:
        response = await http.get(jwks_uri, headers={"Accept": "application/json"})
        response.raise_for_status()
        jwks = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"OIDC JWKS fetch from {jwks_uri} failed: {e}")
        raise DiscoveryError("Unable to load signing keys from the OIDC provider") from e

    if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
        raise DiscoveryError("OIDC JWKS document is malformed")
    return jwks


def _parse_token_response(response: httpx.Response) -> TokenResponse:
    try:
        body = response.json()
    except ValueError as e:
        raise TokenValidationError("Token endpoint response is not valid JSON") from e

    if response.status_code != 200 or (isinstance(body, dict) and "error" in body):
        error = body.get("error") if isinstance(body, dict) else None
        logger.error(f"OIDC token exchange failed: HTTP {response.status_code} error={error}")
        raise TokenValidationError(f"Invalid response from the OIDC provider: {error or response.status_code}")

    if not isinstance(body, dict):
        raise TokenValidationError("Token endpoint response is not a JSON object")

    try:
        tokens = TokenResponse.model_validate(body)
    except ValidationError as e:
        raise TokenValidationError(f"Token endpoint response is incomplete: {e}") from e

    if tokens.token_type.lower() != "bearer":
        raise TokenValidationError(f"Unsupported token_type: {tokens.token_type}")
    return tokens


def _check_claims(
    claims: IdTokenClaims,
    client: ClientIdentity,
    expected_nonce: str,
    clock_skew_seconds: int,
) -> None:
    now = _now()
    if claims.exp + clock_skew_seconds <= now:
        raise TokenValidationError("ID token has expired")

    nbf = claims.model_extra.get("nbf") if claims.model_extra else None
    if isinstance(nbf, (int, float)) and nbf - clock_skew_seconds > now:
        raise TokenValidationError("ID token is not yet valid")

    if isinstance(claims.aud, list) and len(claims.aud) > 1:
        azp = claims.model_extra.get("azp") if claims.model_extra else None
        if azp != client.client_id:
            raise TokenValidationError("ID token azp does not match the client")

    if claims.nonce is None or not secrets.compare_digest(claims.nonce.encode(), expected_nonce.encode()):
        logger.warning(f"OIDC ID token rejected: nonce mismatch (received {_redact(claims.nonce)})")
        raise TokenValidationError("ID token nonce mismatch")


async def process_token_response(
    metadata: ProviderMetadata,
    client: ClientIdentity,
    response: httpx.Response,
    expected_nonce: str,
    http: httpx.AsyncClient,
    clock_skew_seconds: int = 30,
) -> IdTokenClaims:
    """Validate an OpenID token response and return the ID token claims.

    Args:
        metadata: Provider metadata (issuer, JWKS, signing algorithms)
        client: Client identity (audience)
        response: Raw token endpoint response
        expected_nonce: Nonce stored in the session when the flow started
        http: HTTP client used to fetch the JWKS
        clock_skew_seconds: Tolerance applied to exp / nbf

    Returns:
        Validated IdTokenClaims

    Raises:
        TokenValidationError: If the response or the ID token is invalid
        DiscoveryError: If the provider's signing keys cannot be loaded
    """
    tokens = _parse_token_response(response)
    jwks = await _fetch_jwks(metadata, http)

    try:
        # exp/nbf are checked against our own clock with the configured skew
        raw_claims = jwt.decode(
            tokens.id_token,
            jwks,
            algorithms=[alg for alg in metadata.id_token_signing_alg_values_supported if alg != "none"],
            issuer=metadata.issuer,
            audience=client.client_id,
            access_token=tokens.access_token,
            options={"verify_exp": False, "verify_nbf": False},
        )
    except JWTError as e:
        logger.warning(f"OIDC ID token validation failed: {e}")
        raise TokenValidationError(f"Invalid ID token: {e}") from e

    try:
        claims = IdTokenClaims.model_validate(raw_claims)
    except ValidationError as e:
        raise TokenValidationError(f"ID token is missing required claims: {e}") from e

    _check_claims(claims, client, expected_nonce, clock_skew_seconds)
    logger.info(f"OIDC ID token validated for subject {claims.sub}")
    return claims
