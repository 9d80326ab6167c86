"""State, nonce and PKCE (RFC 7636) parameter generation.

S256 only. All values are URL-safe and carry 256 bits of entropy.
"""

import base64
import hashlib
import secrets
import time

from headplane_auth.domain.models.oidc import FlowState

CODE_CHALLENGE_METHOD = "S256"

# 32 random bytes -> 43 base64url characters
_RANDOM_BYTES = 32


def generate_state() -> str:
    """Opaque value for CSRF protection; returned in the callback."""
    return secrets.token_urlsafe(_RANDOM_BYTES)


def generate_nonce() -> str:
    """Random value bound into the ID token."""
    return secrets.token_urlsafe(_RANDOM_BYTES)


def generate_code_verifier() -> str:
    """PKCE code verifier (43 characters, unreserved alphabet)."""
    return secrets.token_urlsafe(_RANDOM_BYTES)


def code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge: BASE64URL(SHA256(ASCII(verifier))) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def new_flow_state() -> FlowState:
    """Generate independent state, nonce and code verifier for a new login."""
    return FlowState(
        state=generate_state(),
        nonce=generate_nonce(),
        code_verifier=generate_code_verifier(),
        issued_at=int(time.time()),
    )
