"""Configuration Settings for Headplane Auth

Manages environment variables and application configuration.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

from headplane_auth.domain.models.oidc import OIDCConfig


class Settings(BaseSettings):
    """Application settings"""

    # Service info
    service_name: str = "headplane-auth"
    service_version: str = "1.0.0"
    environment: str = "development"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False

    # OIDC relying party configuration
    oidc_issuer: Optional[str] = None
    oidc_client_id: Optional[str] = None
    oidc_client_secret: Optional[str] = None
    oidc_token_endpoint_auth_method: str = "client_secret_basic"
    oidc_http_timeout: float = 10.0  # seconds, applied to every outbound call
    oidc_flow_ttl_seconds: int = 600  # state/nonce/verifier lifetime
    oidc_clock_skew_seconds: int = 30

    # Headscale API (used to mint API keys after login)
    headscale_url: str = "http://localhost:8080"
    headscale_root_key: Optional[str] = None

    # Session cookie
    session_cookie_name: str = "hp_sess"
    session_max_age_seconds: int = 86400  # 24 hours
    session_cookie_secure: bool = False
    session_cookie_samesite: str = "lax"
    session_key_prefix: str = "headplane:session:"

    # Redis configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components"""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Navigation
    login_path: str = "/admin/login"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def oidc_config(self) -> Optional[OIDCConfig]:
        """Build the OIDC configuration for a login flow.

        Returns:
            OIDCConfig, or None when OIDC is not configured

        Raises:
            ValueError: If OIDC is only partially configured
        """
        if not self.oidc_issuer:
            return None

        if not all([self.oidc_client_id, self.headscale_root_key]):
            raise ValueError(
                "OIDC login requires: OIDC_ISSUER, OIDC_CLIENT_ID, HEADSCALE_ROOT_KEY"
            )

        return OIDCConfig(
            issuer=self.oidc_issuer,
            client_id=self.oidc_client_id,
            client_secret=self.oidc_client_secret,
            token_endpoint_auth_method=self.oidc_token_endpoint_auth_method,
            root_key=self.headscale_root_key,
            flow_ttl_seconds=self.oidc_flow_ttl_seconds,
            clock_skew_seconds=self.oidc_clock_skew_seconds,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()
