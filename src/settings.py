"""Application settings using pydantic-settings.

Loads configuration from environment variables with .env file support.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Allow both field name and alias
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Builder backend (chat stream + credential storage)
    api_base_url: str = Field(
        default="http://localhost:8090",
        description="Base URL of the app builder backend",
        validation_alias=AliasChoices("api_base_url", "blockpilot_api_url"),
    )
    api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token for the app builder backend (admin session)",
        validation_alias=AliasChoices("api_token", "blockpilot_api_token"),
    )
    request_timeout: float = Field(default=30.0, gt=0)
    stream_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Read timeout for the chat stream",
    )

    # OAuth2 device authorization grant
    oauth_client_id: str = Field(default="app_EMoamEEZ73f0CkXaXp7hrann")
    oauth_scope: str = Field(default="openid profile email offline_access")
    oauth_audience: str = Field(default="https://api.openai.com/v1")
    device_code_url: str = Field(default="https://auth0.openai.com/oauth/device/code")
    token_url: str = Field(default="https://auth0.openai.com/oauth/token")
    device_verification_url: str = Field(
        default="https://auth.openai.com/codex/device",
        description="Fallback page shown when the provider sends no verification URI",
    )
    device_poll_min_interval: float = Field(
        default=5.0,
        ge=0,
        description="Lower bound on the token poll interval, whatever the server asks for",
    )

    # Self-review loop
    max_review_rounds: int = Field(default=2, ge=0, le=10)
    review_delay_seconds: float = Field(
        default=0.8,
        ge=0,
        description="Delay before capturing the canvas for a review round",
    )

    # Credential storage
    config_backend: Literal["http", "local"] = Field(
        default="http",
        description="Where credentials live: the builder backend or a local JSON file",
    )
    config_dir: Path = Field(default=Path.home() / ".blockpilot")
    codex_home: Path | None = Field(
        default=None,
        description="Directory holding the external CLI's auth.json (defaults to ~/.codex)",
        validation_alias=AliasChoices("codex_home", "CODEX_HOME"),
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
