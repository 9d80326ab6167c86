"""Headscale API Client

Thin async wrapper over the Headscale REST API. Only the calls made by the
login flow are implemented.
"""

import logging
from typing import Any

import httpx

from headplane_auth.domain.errors import DownstreamApiError

logger = logging.getLogger(__name__)


class HeadscaleClient:
    """Headscale REST API client

    Example:
        client = HeadscaleClient("http://headscale:8080", http)
        await client.post("v1/apikey", root_key, {"expiration": "2024-01-01T00:00:00.000Z"})
    """

    def __init__(self, base_url: str, http: httpx.AsyncClient):
        """Initialize Headscale client

        Args:
            base_url: Headscale server URL (without /api)
            http: HTTP client used for requests (carries the timeout)
        """
        self.base_url = base_url.rstrip("/")
        self.http = http

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    async def post(self, path: str, api_key: str, body: dict[str, Any]) -> Any:
        """POST a JSON body to the Headscale API

        Args:
            path: API path relative to /api (e.g., v1/apikey)
            api_key: Headscale API key sent as Bearer token
            body: JSON request body

        Returns:
            Decoded JSON response

        Raises:
            DownstreamApiError: If the request fails or the response is not JSON
        """
        url = self._url(path)
        try:
            response = await self.http.post(
                url,
                json=body,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Headscale request POST {path} failed: {e}")
            raise DownstreamApiError(f"Unable to reach Headscale at {self.base_url}") from e

        if not response.is_success:
            logger.error(f"Headscale POST {path} returned HTTP {response.status_code}: {response.text}")
            raise DownstreamApiError(f"Headscale request failed with HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise DownstreamApiError(f"Headscale returned a non-JSON response for {path}") from e
