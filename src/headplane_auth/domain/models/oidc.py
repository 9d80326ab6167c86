"""OIDC Data Models

Purpose: Define data structures exchanged during the OIDC login flow

Key Components:
- OIDCConfig / ClientIdentity: Static relying-party configuration
- ProviderMetadata: Discovery document of one issuer
- FlowState: Ephemeral secrets bridging the two halves of the flow
- CallbackParameters: Validated authorization response values
- TokenResponse / IdTokenClaims: Token endpoint output
- SessionUser: User identity stored alongside the API key
"""

from dataclasses import dataclass
from typing import Any, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TokenEndpointAuthMethod = Literal["client_secret_basic", "none"]


class ClientIdentity(BaseModel):
    """OAuth 2.0 client registered at the provider.

    Attributes:
        client_id: OAuth 2.0 client ID
        client_secret: OAuth 2.0 client secret (optional for public clients)
        token_endpoint_auth_method: How the client authenticates at the token endpoint
    """
    model_config = ConfigDict(frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: Optional[str] = None
    token_endpoint_auth_method: TokenEndpointAuthMethod = "client_secret_basic"

    @model_validator(mode="after")
    def _secret_required_for_basic(self) -> "ClientIdentity":
        if self.token_endpoint_auth_method == "client_secret_basic" and not self.client_secret:
            raise ValueError("client_secret_basic requires a client_secret")
        return self


class OIDCConfig(BaseModel):
    """Configuration of one OIDC login integration.

    Passed explicitly to both halves of the flow; never stored globally
    by the flow itself.
    """
    model_config = ConfigDict(frozen=True)

    issuer: str
    client_id: str = Field(min_length=1)
    client_secret: Optional[str] = None
    token_endpoint_auth_method: TokenEndpointAuthMethod = "client_secret_basic"
    root_key: str = Field(min_length=1)  # Headscale key used to mint user API keys
    flow_ttl_seconds: int = Field(default=600, gt=0)
    clock_skew_seconds: int = Field(default=30, ge=0)

    @field_validator("issuer")
    @classmethod
    def _issuer_is_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"OIDC issuer must be an http(s) URL, got {value!r}")
        return value

    @model_validator(mode="after")
    def _secret_required_for_basic(self) -> "OIDCConfig":
        if self.token_endpoint_auth_method == "client_secret_basic" and not self.client_secret:
            raise ValueError("client_secret_basic requires OIDC_CLIENT_SECRET")
        return self

    @property
    def client(self) -> ClientIdentity:
        """Client identity used against the provider"""
        return ClientIdentity(
            client_id=self.client_id,
            client_secret=self.client_secret,
            token_endpoint_auth_method=self.token_endpoint_auth_method,
        )


class ProviderMetadata(BaseModel):
    """Resolved OpenID Provider configuration.

    Only the fields the relying party uses are typed; everything else in the
    discovery document is kept as extra data.
    """
    model_config = ConfigDict(frozen=True, extra="allow")

    issuer: str
    authorization_endpoint: str
    token_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None
    id_token_signing_alg_values_supported: list[str] = Field(default_factory=lambda: ["RS256"])
    authorization_response_iss_parameter_supported: bool = False


@dataclass(frozen=True)
class FlowState:
    """Secrets generated when a login starts

    Attributes:
        state: CSRF binding round-tripped through the provider
        nonce: Replay binding embedded in the ID token
        code_verifier: PKCE secret sent with the code exchange
        issued_at: Epoch seconds when the flow started
    """
    state: str
    nonce: str
    code_verifier: str
    issued_at: int


@dataclass(frozen=True)
class CallbackParameters:
    """Authorization response values that passed validation"""
    code: str
    state: str
    iss: Optional[str] = None


class TokenResponse(BaseModel):
    """Successful token endpoint response (OpenID variant)"""
    model_config = ConfigDict(extra="allow")

    access_token: str = Field(min_length=1)
    token_type: str
    id_token: str = Field(min_length=1)
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class IdTokenClaims(BaseModel):
    """Validated ID token claims"""
    model_config = ConfigDict(extra="allow")

    iss: str
    sub: str
    aud: str | list[str]
    exp: int
    iat: int
    nonce: Optional[str] = None
    # Profile claims are stringified when building the session user
    name: Any = None
    email: Any = None


class SessionUser(BaseModel):
    """User identity stored in the session after login"""
    name: str
    email: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: IdTokenClaims) -> "SessionUser":
        """Derive the session user, falling back to 'Anonymous' without a name claim"""
        return cls(
            name=str(claims.name) if claims.name else "Anonymous",
            email=str(claims.email) if claims.email else None,
        )

    def to_session(self) -> dict:
        """Convert to the session representation (email omitted when absent)"""
        return self.model_dump(exclude_none=True)
