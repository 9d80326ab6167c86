"""Exception hierarchy for the OIDC login flow.

Every failure in the flow is fatal to the current request and surfaces as
exactly one of these types. The application maps them to HTTP responses
through ``code`` and ``status_code``.
"""


class OIDCError(Exception):
    """Base exception for all OIDC login errors."""

    code = "oidc_error"
    status_code = 400


class DiscoveryError(OIDCError):
    """Provider metadata is unreachable, malformed or incomplete."""

    code = "discovery_error"
    status_code = 502


class MissingFlowStateError(OIDCError):
    """The session holds no (or expired) state, nonce or code verifier."""

    code = "missing_flow_state"
    status_code = 400


class CallbackValidationError(OIDCError):
    """The authorization response carries an error or fails validation.

    Attributes:
        error: OAuth 2.0 error code signalled by the provider, if any
        error_description: Human-readable description from the provider
    """

    code = "callback_validation_error"
    status_code = 400

    def __init__(self, message: str, error: str = None, error_description: str = None):
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class ProviderChallengeError(OIDCError):
    """The token endpoint answered with a WWW-Authenticate challenge."""

    code = "provider_challenge"
    status_code = 502

    def __init__(self, message: str, challenges: list[str] = None):
        super().__init__(message)
        self.challenges = challenges or []


class TokenValidationError(OIDCError):
    """The token response or its ID token is invalid."""

    code = "token_validation_error"
    status_code = 401


class DownstreamApiError(OIDCError):
    """Minting the Headscale API key failed."""

    code = "downstream_api_error"
    status_code = 502
