"""
Configuration module using Pydantic Settings for environment variable management.

Only essential environment variables are exposed. Protocol constants that the
upstream OAuth providers define (error codes, grant types) are hardcoded.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


# ============================================================
# OAUTH PROVIDERS
# ============================================================

class Provider:
    """Identifiers for the third-party platforms users can connect."""

    TIKTOK = "tiktok"


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Client configuration needed to authorize and refresh tokens for one provider."""

    name: str
    token_url: str
    client_key: Optional[str]
    client_secret: Optional[str]
    authorize_url: str = ""
    redirect_uri: Optional[str] = None
    scopes: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.client_key and self.client_secret)

    @property
    def can_authorize(self) -> bool:
        """Whether users can be sent through the authorization redirect."""
        return self.is_configured and bool(self.authorize_url and self.redirect_uri)


# Upstream error codes meaning the refresh token itself is dead
REVOKED_ERROR_CODES = frozenset({"invalid_grant", "invalid_refresh_token"})

# Substrings in error_description that mean the same thing
REVOKED_DESCRIPTION_MARKERS = ("expired", "revoked")


class Settings(BaseSettings):
    """
    Application settings.

    Values are read from the environment (or a local .env file). Timing
    constants are configurable so tests and deployments can tune them.
    """

    # ============================================================
    # ENVIRONMENT VARIABLES
    # ============================================================

    # Application
    app_name: str = "clipstream"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database (SQLite file for local development, Postgres in production)
    database_url: str = "sqlite:///./clipstream.db"

    # Security - API key for the workflow engine's progress/callback requests
    clipstream_api_key: Optional[str] = None

    # TikTok OAuth client
    tiktok_client_key: Optional[str] = None
    tiktok_client_secret: Optional[str] = None
    tiktok_token_url: str = "https://open.tiktokapis.com/v2/oauth/token/"
    tiktok_authorize_url: str = "https://www.tiktok.com/v2/auth/authorize/"
    tiktok_redirect_uri: Optional[str] = None
    tiktok_scopes: str = "user.info.basic,video.upload"

    # Where the browser lands after the authorization callback
    frontend_url: str = "http://localhost:3000"

    # Token lifecycle
    token_expiry_margin_seconds: int = 5 * 60  # Refresh this long before real expiry
    default_token_lifetime_seconds: int = 24 * 60 * 60  # When upstream omits expires_in
    oauth_http_timeout_seconds: float = 15.0

    # Progress streaming
    progress_stream_timeout_seconds: float = 10 * 60  # Hard ceiling per connection
    progress_max_pending_events: int = 256  # Per-subscriber backlog before drops

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def get_provider_config(self, provider: str) -> Optional[OAuthProviderConfig]:
        """
        Get the OAuth client configuration for a provider.

        Args:
            provider: Provider tag (one of the Provider constants)

        Returns:
            Provider configuration, or None if the provider is unknown
        """
        providers = {
            Provider.TIKTOK: OAuthProviderConfig(
                name=Provider.TIKTOK,
                token_url=self.tiktok_token_url,
                client_key=self.tiktok_client_key,
                client_secret=self.tiktok_client_secret,
                authorize_url=self.tiktok_authorize_url,
                redirect_uri=self.tiktok_redirect_uri,
                scopes=self.tiktok_scopes,
            ),
        }
        return providers.get(provider)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
