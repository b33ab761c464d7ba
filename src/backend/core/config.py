"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (or a local .env file).
"""

from functools import lru_cache
from typing import Any, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "AmaPlayer Verification"
    APP_ENV: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str = ""  # Required - loaded from environment
    LOG_LEVEL: str = "INFO"

    # Database - PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "amaplayer"
    POSTGRES_PASSWORD: str = ""  # Required unless DATABASE_URL is set
    POSTGRES_DB: str = "amaplayer"
    POSTGRES_SSL: bool = True

    # Full SQLAlchemy URL override (e.g. sqlite+aiosqlite:///./local.db for local runs)
    DATABASE_URL: str | None = None
    DB_CREATE_TABLES: bool = True
    DB_ECHO: bool = False

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    @property
    def POSTGRES_URL(self) -> str:
        """Construct PostgreSQL connection URL."""
        url = (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )
        return f"{url}?ssl=require" if self.POSTGRES_SSL else url

    @property
    def database_url(self) -> str:
        """URL the engine connects to."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if not self.POSTGRES_PASSWORD:
            raise ValueError("POSTGRES_PASSWORD must be set in environment when DATABASE_URL is not set")
        return self.POSTGRES_URL

    # Authentication
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000"
    FRONTEND_URL: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Talent video verification
    DEFAULT_VERIFICATION_GOAL: int = 1
    # "record": in-flight votes that land after the flip are still counted
    # "cap": the counter never exceeds the goal, late votes get AlreadyFinal
    VERIFICATION_POST_GOAL_POLICY: Literal["record", "cap"] = "record"
    VERIFICATION_ENFORCE_DEADLINE: bool = True
    VERIFICATION_MAX_RETRIES: int = 3
    VERIFICATION_RETRY_BACKOFF_SECONDS: float = 0.05
    VERIFICATION_MESSAGE_MAX_LENGTH: int = 1000

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60
    VERIFICATION_RATE_LIMIT_PER_MINUTE: int = 5
    # Windows older than this are purged by the background scheduler
    RATE_LIMIT_RETENTION_SECONDS: int = 3600
    RATE_LIMIT_CLEANUP_INTERVAL_SECONDS: int = 600

    # Public IP resolution (used when the client could not resolve its own IP)
    PUBLIC_IP_LOOKUP_URL: str = "https://api.ipify.org?format=json"
    PUBLIC_IP_FALLBACK_URL: str = "https://api64.ipify.org?format=json"
    PUBLIC_IP_TIMEOUT_SECONDS: float = 5.0

    # Profile service (badge updates). When unset, badges are written to the users table.
    PROFILE_SERVICE_URL: str | None = None
    PROFILE_SERVICE_TOKEN: str | None = None
    PROFILE_SERVICE_TIMEOUT_SECONDS: float = 10.0

    # Badge notification delivery
    NOTIFICATION_MAX_ATTEMPTS: int = 5
    NOTIFICATION_BACKOFF_BASE_SECONDS: int = 30
    NOTIFICATION_RETRY_INTERVAL_SECONDS: int = 60
    ENABLE_NOTIFICATION_SCHEDULER: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
