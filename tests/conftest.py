"""
Pytest configuration and fixtures for Headplane Auth tests.

Provides fixtures for:
- In-memory Redis stand-in and session store
- Fake OIDC provider and Headscale server (httpx.MockTransport)
- RSA signing key for ID tokens
- Starlette requests for the login flow
"""

import json
import time
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt
from starlette.requests import Request

from headplane_auth.domain.models.oidc import OIDCConfig
from headplane_auth.infrastructure.session.store import SessionStore

ISSUER = "https://idp.example.com"
CLIENT_ID = "headplane"
CLIENT_SECRET = "s3cret"
ROOT_KEY = "hs-root-key"
HEADSCALE_URL = "http://headscale.test:8080"
KEY_ID = "test-key"


class InMemoryRedis:
    """Async stand-in for the subset of redis.asyncio.Redis used by the session store."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        return True


class FakeProvider:
    """OIDC provider + Headscale server answering through httpx.MockTransport.

    Every request is recorded in ``requests``. Behaviour is tuned by mutating
    the public attributes before the flow runs.
    """

    def __init__(self, private_pem: bytes, public_jwk: dict):
        self.private_pem = private_pem
        self.public_jwk = public_jwk
        self.requests: list[httpx.Request] = []
        self.discovery: dict[str, Any] = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "jwks_uri": f"{ISSUER}/jwks",
            "response_types_supported": ["code"],
            "id_token_signing_alg_values_supported": ["RS256"],
        }
        self.claims: dict[str, Any] = {
            "iss": ISSUER,
            "sub": "user-123",
            "aud": CLIENT_ID,
            "iat": int(time.time()),
            "exp": int(time.time()) + 3600,
            "name": "Alice",
            "email": "alice@example.com",
        }
        self.nonce: Optional[str] = None  # nonce claim placed in the ID token
        self.token_status = 200
        self.token_headers: dict[str, str] = {}
        self.token_body: Optional[dict] = None
        self.api_key_status = 200
        self.api_key_body: Any = {"apiKey": "hs-user-api-key"}

    def sign(self, claims: dict) -> str:
        return jwt.encode(claims, self.private_pem.decode(), algorithm="RS256", headers={"kid": KEY_ID})

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def form(self, request: httpx.Request) -> dict[str, str]:
        return dict(parse_qsl(request.content.decode()))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/.well-known/openid-configuration":
            return httpx.Response(200, json=self.discovery)

        if path == "/jwks":
            return httpx.Response(200, json={"keys": [self.public_jwk]})

        if path == "/token":
            if self.token_body is not None:
                body = self.token_body
            else:
                claims = dict(self.claims)
                if self.nonce is not None:
                    claims["nonce"] = self.nonce
                body = {
                    "access_token": "provider-access-token",
                    "token_type": "Bearer",
                    "expires_in": 3600,
                    "id_token": self.sign(claims),
                }
            return httpx.Response(self.token_status, json=body, headers=self.token_headers)

        if path == "/api/v1/apikey":
            return httpx.Response(self.api_key_status, json=self.api_key_body)

        return httpx.Response(404, json={"error": "not_found"})


@pytest.fixture(scope="session")
def rsa_keys() -> tuple[bytes, dict]:
    """RSA key pair: (private PEM, public JWK)."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    public_jwk = jwk.construct(public_pem.decode(), "RS256").to_dict()
    public_jwk["kid"] = KEY_ID
    public_jwk["use"] = "sig"
    return private_pem, public_jwk


@pytest.fixture
def provider(rsa_keys) -> FakeProvider:
    private_pem, public_jwk = rsa_keys
    return FakeProvider(private_pem, public_jwk)


@pytest_asyncio.fixture
async def http(provider):
    """HTTP client routed to the fake provider."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider.handler)) as client:
        yield client


@pytest.fixture
def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def session_store(redis_client) -> SessionStore:
    return SessionStore(redis_client)


@pytest.fixture
def oidc_config() -> OIDCConfig:
    return OIDCConfig(
        issuer=ISSUER,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        root_key=ROOT_KEY,
    )


@pytest.fixture
def make_request() -> Callable[..., Request]:
    """Build a Starlette request for the login routes."""

    def _make(
        path: str = "/admin/oidc/start",
        query: str = "",
        headers: Optional[dict[str, str]] = None,
    ) -> Request:
        all_headers = {"host": "headplane.example.com"}
        all_headers.update(headers or {})
        scope = {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "server": ("headplane.example.com", 80),
            "path": path,
            "raw_path": path.encode(),
            "query_string": query.encode(),
            "root_path": "",
            "headers": [(k.lower().encode(), v.encode()) for k, v in all_headers.items()],
        }
        return Request(scope)

    return _make


@pytest.fixture
def seed_session(redis_client, session_store) -> Callable[[dict], str]:
    """Store session data directly and return the matching Cookie header."""

    def _seed(data: dict, session_id: str = "seeded-session") -> str:
        redis_client.store[f"{session_store.key_prefix}{session_id}"] = json.dumps(data)
        return f"{session_store.cookie_name}={session_id}"

    return _seed


@pytest.fixture
def read_session(redis_client, session_store) -> Callable[..., dict]:
    """Decode the session referenced by a response's Set-Cookie header."""

    def _read(response) -> dict:
        cookie = response.headers["set-cookie"]
        session_id = cookie.split(";", 1)[0].split("=", 1)[1]
        return json.loads(redis_client.store[f"{session_store.key_prefix}{session_id}"])

    return _read
