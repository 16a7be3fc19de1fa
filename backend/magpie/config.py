"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Database
    database_url: str = Field(
        ...,
        description="Async SQLAlchemy connection URL (postgresql+asyncpg://...)",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the background task broker",
    )

    # Machine-to-machine secrets
    cron_secret: str = Field(
        default="",
        description="Bearer secret required by the scheduled discovery trigger",
    )
    pipeline_secret: str = Field(
        default="",
        description="Bearer secret for trusted automation (moderation queue reads, single-profile discovery)",
    )

    # Human admins
    admin_user_ids: str = Field(
        default="",
        description="Comma-separated identities allowed to moderate. Empty means every authenticated user.",
    )

    # Supabase (for auth verification)
    supabase_jwt_secret: str = Field(
        default="",
        description="HS256 secret used to verify user bearer tokens",
    )
    jwt_audience: str = Field(default="authenticated", description="Expected JWT audience")

    # Search
    cursor_secret: str = Field(
        default="",
        description="HMAC key for signing search cursors",
    )
    search_timeout_seconds: float = Field(
        default=20.0,
        description="Upper bound for a whole search request",
    )
    ranking_timeout_seconds: float = Field(
        default=8.0,
        description="Upper bound for the ranking call; must stay below the search timeout",
    )

    # Discovery
    discovery_service_url: str = Field(
        default="",
        description="Endpoint of the external scholarship discovery service",
    )
    discovery_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for a single location's discovery call",
    )
    discovery_batch_budget_seconds: float = Field(
        default=300.0,
        description="Wall-clock budget for one scheduled discovery batch",
    )
    discovery_concurrency: int = Field(
        default=1,
        ge=1,
        description="How many locations may be discovered at the same time",
    )

    # OpenAI (optional - only used for ranking)
    openai_api_key: str = Field(default="", description="OpenAI API key for result ranking")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model to use")

    # Sentry
    sentry_dsn: str = Field(default="", description="Sentry DSN for error tracking")

    # HTTP
    http_user_agent: str = Field(
        default="MagpieBot/1.0 (+https://magpie.app/bot)",
        description="User agent for outbound requests",
    )

    @model_validator(mode="after")
    def check_ranking_timeout(self) -> "Settings":
        if self.ranking_timeout_seconds >= self.search_timeout_seconds:
            raise ValueError("ranking_timeout_seconds must be lower than search_timeout_seconds")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def admin_ids(self) -> frozenset[str]:
        """Admin allow-list parsed from ``admin_user_ids``."""
        return frozenset(
            value.strip() for value in self.admin_user_ids.split(",") if value.strip()
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
