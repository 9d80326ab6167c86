"""OpenID Connect login for Headplane.

Relying-party side of the Authorization Code flow with PKCE:
- start_login: discover the provider and redirect to its authorization endpoint
- finish_login: validate the callback, exchange the code, validate the ID
  token and mint a Headscale API key for the session
"""

from headplane_auth.domain.errors import (
    CallbackValidationError,
    DiscoveryError,
    DownstreamApiError,
    MissingFlowStateError,
    OIDCError,
    ProviderChallengeError,
    TokenValidationError,
)
from headplane_auth.core.auth.flow import build_callback_url, finish_login, start_login

__all__ = [
    "OIDCError",
    "DiscoveryError",
    "MissingFlowStateError",
    "CallbackValidationError",
    "ProviderChallengeError",
    "TokenValidationError",
    "DownstreamApiError",
    "build_callback_url",
    "start_login",
    "finish_login",
]
