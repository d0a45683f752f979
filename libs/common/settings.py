"""Application settings for the Pepper chat service (FastAPI + Firestore + DeepSeek)."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from ``PEPPER_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PEPPER_",
        env_file=None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Core application settings
    app_env: Literal["development", "staging", "production", "test"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # CORS - use string to avoid JSON parsing issues
    cors_origins_str: str = Field(default="http://localhost:3000,https://localhost:3000", alias="cors_origins")

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from string."""
        if not self.cors_origins_str.strip():
            return ["http://localhost:3000", "https://localhost:3000"]
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # Upstream completion endpoint. The unprefixed DEEPSEEK_* names are
    # accepted so existing deployments keep working.
    completion_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("PEPPER_COMPLETION_API_KEY", "DEEPSEEK_API_KEY"),
    )
    completion_api_url: str = Field(
        default="https://api.deepseek.com/v1/chat/completions",
        validation_alias=AliasChoices("PEPPER_COMPLETION_API_URL", "DEEPSEEK_API_URL"),
    )
    completion_model: str = "deepseek-chat"
    completion_timeout_seconds: float = 120.0

    # Thread cache / ownership registry backend
    cache_backend: Literal["memory", "redis"] = "memory"
    redis_url: str | None = None
    cache_ttl_seconds: int = 86400

    # Firestore
    firestore_project: str = "pepper-legal"
    firestore_database: str = "(default)"
    firebase_admin_sdk_json: str | None = None
    firebase_admin_sdk_path: str | None = None

    # Conversation memory limits
    max_memory_summary_chars: int = 100_000
    short_history_max: int = 8
    cache_history_limit: int = 20
    cache_reload_limit: int = 60
    recent_threads_max: int = 10

    # Jurisprudence search
    ruling_scan_limit: int = 500
    ruling_result_limit: int = 50

    # Rate limiting for the send endpoint
    send_rate_limit_per_minute: int = 30

    @field_validator("cache_history_limit", "cache_reload_limit", "short_history_max", "recent_threads_max")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """History windows must hold at least one entry."""
        if v < 1:
            raise ValueError("History limits must be at least 1")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def is_test(self) -> bool:
        """Check if running under the test suite."""
        return self.app_env == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
