"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Fail fast with clear error messages if required config is missing.
"""

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = Field(
        default="sqlite:///./news_cache.db",
        description="SQLAlchemy database URL (PostgreSQL in production)",
    )

    # Upstream providers
    NEWSDATA_API_KEY: str | None = Field(
        default=None,
        description="NewsData.io API key",
    )
    NEWSDATA_BASE_URL: str = Field(
        default="https://newsdata.io/api/1",
        description="NewsData.io API base URL",
    )
    NEWSAPI_ORG_API_KEY: str | None = Field(
        default=None,
        description="NewsAPI.org API key",
    )
    NEWSAPI_ORG_BASE_URL: str = Field(
        default="https://newsapi.org/v2",
        description="NewsAPI.org API base URL",
    )
    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        gt=0,
        description="Per-call timeout for upstream provider requests",
    )

    # Scheduler
    SCHEDULER_ENABLED: bool = Field(
        default=True,
        description="Arm the daily fetch timers at startup",
    )
    SCHEDULER_TIMEZONE: str = Field(
        default="Asia/Kolkata",
        description="IANA timezone the slot times are expressed in",
    )
    SCHEDULER_BOOTSTRAP_WHEN_EMPTY: bool = Field(
        default=True,
        description="Run one slot shortly after start if the article table is empty",
    )
    SCHEDULER_BOOTSTRAP_SLOT: str = Field(
        default="MORNING",
        description="Slot executed by the empty-store bootstrap",
    )
    SCHEDULER_BOOTSTRAP_DELAY_SECONDS: float = Field(
        default=3.0,
        ge=0,
        description="Settle delay before the bootstrap slot runs",
    )

    # Cache
    CACHE_EXPIRY_MINUTES: int = Field(
        default=30,
        ge=1,
        description="Age after which cached articles for a filter count as stale",
    )

    # Provider credit budgets (requests per day)
    NEWSDATA_DAILY_LIMIT: int = Field(default=200, ge=0)
    NEWSAPI_ORG_DAILY_LIMIT: int = Field(default=100, ge=0)

    # CORS
    CORS_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    # Application
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )
    LOG_LEVEL: str = Field(default="INFO")
    LOG_JSON: bool = Field(
        default=True,
        description="Emit single-line JSON logs; human-readable when false",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Hosted Postgres provides postgresql:// but SQLAlchemy needs postgresql+psycopg2://"""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg2://", 1)
        return v

    @field_validator("SCHEDULER_TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings. Call at startup to validate config."""
    return Settings()
