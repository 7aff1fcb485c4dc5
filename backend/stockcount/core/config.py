"""Application configuration using pydantic-settings.

Every tunable is read from the environment (or `.env`) through the
`settings` object; modules never call os.getenv() themselves.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - defaults to a local SQLite file, override via env for real deployments
    database_url: str = "sqlite:///./stockcount.db"

    # Redis - optional, backs the draft store when configured
    redis_url: Optional[str] = None

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # ==========================================================================
    # Stock-count drafts
    # ==========================================================================
    draft_ttl_hours: int = 24
    draft_autosave_debounce_seconds: float = 1.0
    draft_key_prefix: str = "reconciliation_draft"

    # ==========================================================================
    # Reconciliation behaviour
    # ==========================================================================
    # Re-read theoretical stock when a pending record is re-submitted.
    # Off: the baseline stays pinned to the snapshot taken at creation.
    rebaseline_on_edit: bool = False
    # Refuse confirmation when theoretical stock moved since the snapshot.
    reject_stale_baseline: bool = False

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    @field_validator("draft_ttl_hours")
    @classmethod
    def validate_draft_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("draft_ttl_hours must be positive")
        return v

    @field_validator("draft_autosave_debounce_seconds")
    @classmethod
    def validate_debounce(cls, v: float) -> float:
        if v < 0:
            raise ValueError("draft_autosave_debounce_seconds cannot be negative")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def draft_ttl_seconds(self) -> int:
        return self.draft_ttl_hours * 3600


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
