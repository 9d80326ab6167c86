"""Domain models for Headplane Auth"""

from headplane_auth.domain.models.oidc import (
    CallbackParameters,
    ClientIdentity,
    FlowState,
    IdTokenClaims,
    OIDCConfig,
    ProviderMetadata,
    SessionUser,
    TokenResponse,
)

__all__ = [
    "CallbackParameters",
    "ClientIdentity",
    "FlowState",
    "IdTokenClaims",
    "OIDCConfig",
    "ProviderMetadata",
    "SessionUser",
    "TokenResponse",
]
