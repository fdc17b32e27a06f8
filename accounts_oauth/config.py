"""Application configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "development"  # development, staging, production

    # Absolute URL of this service (default redirect URIs hang off it)
    site_url: str = "http://localhost:8000"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Outbound HTTP timeout in seconds (no retries)
    http_timeout: float = 10.0

    # Key for opening sealed client secrets. Plain secrets work without it.
    oauth_secret_key: Optional[str] = None

    # How long a finished login waits for the client to retrieve it
    pending_credential_ttl_seconds: int = 60

    # How long a started login waits for the provider callback
    pending_login_ttl_seconds: int = 300

    # FIWARE IdM
    fiware_root_url: str = ""
    fiware_client_id: str = ""
    fiware_secret: str = ""
    fiware_redirect_uri: str = ""

    # Imgur
    imgur_client_id: str = ""
    imgur_secret: str = ""
    imgur_redirect_uri: str = ""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    @model_validator(mode="after")
    def _strip_trailing_slashes(self) -> "Settings":
        """Root URLs are joined with paths, so drop trailing slashes."""
        self.site_url = self.site_url.rstrip("/")
        self.fiware_root_url = self.fiware_root_url.rstrip("/")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
