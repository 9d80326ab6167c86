"""OpenID Provider discovery.

Fetches and validates ``/.well-known/openid-configuration`` for an issuer.
Metadata is resolved fresh on every call; the login flow tolerates the
provider configuration changing between its two halves.
"""

import logging

import httpx
from pydantic import ValidationError

from headplane_auth.domain.errors import DiscoveryError
from headplane_auth.domain.models.oidc import ProviderMetadata

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def discovery_url(issuer: str) -> str:
    """Build the discovery document URL for an issuer."""
    return f"{issuer.rstrip('/')}{WELL_KNOWN_PATH}"


async def resolve_provider_metadata(issuer: str, http: httpx.AsyncClient) -> ProviderMetadata:
    """Fetch and validate the provider metadata for an issuer.

    Args:
        issuer: OIDC issuer URL (e.g., https://accounts.google.com)
        http: HTTP client used for the request (carries the timeout)

    Returns:
        Validated ProviderMetadata

    Raises:
        DiscoveryError: If the document is unreachable, malformed, issued for a
            different issuer, or lacks an authorization endpoint
    """
    url = discovery_url(issuer)

    try:
        response = await http.get(url, headers={"Accept": "application/json"})
    except httpx.HTTPError as e:
        logger.error(f"OIDC discovery request to {url} failed: {e}")
        raise DiscoveryError(f"Unable to reach the OIDC provider at {url}") from e

    if response.status_code != 200:
        logger.error(f"OIDC discovery returned HTTP {response.status_code} from {url}")
        raise DiscoveryError(f"OIDC discovery failed with HTTP {response.status_code}")

    try:
        document = response.json()
    except ValueError as e:
        raise DiscoveryError("OIDC discovery document is not valid JSON") from e

    if not isinstance(document, dict):
        raise DiscoveryError("OIDC discovery document is not a JSON object")

    if not document.get("authorization_endpoint"):
        raise DiscoveryError("No authorization endpoint found on the OIDC provider")

    advertised = document.get("issuer")
    if not isinstance(advertised, str) or advertised.rstrip("/") != issuer.rstrip("/"):
        raise DiscoveryError(
            f"OIDC discovery issuer mismatch: expected {issuer}, got {advertised}"
        )

    try:
        metadata = ProviderMetadata.model_validate(document)
    except ValidationError as e:
        raise DiscoveryError(f"OIDC discovery document is malformed: {e}") from e

    logger.info(f"OIDC discovery loaded from {url}")
    return metadata


def require_endpoint(metadata: ProviderMetadata, name: str) -> str:
    """Return a metadata endpoint the flow cannot proceed without.

    Raises:
        DiscoveryError: If the provider does not advertise the endpoint
    """
    value = getattr(metadata, name, None)
    if not value:
        raise DiscoveryError(f"No {name} found on the OIDC provider")
    return value
