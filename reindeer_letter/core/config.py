"""
Core application configuration using Pydantic Settings.

All environment variables are loaded here and validated.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App Configuration
    APP_NAME: str = "Reindeer Letter"
    APP_URL: str = "http://localhost:8000"
    FRONTEND_URL: str = "https://reindeer-letter.site"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Database
    DATABASE_URL: str

    # Security & Encryption
    SECRET_KEY: str  # For JWT signing
    ENCRYPTION_KEY: str  # For Fernet refresh token encryption (44-char base64)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Shared secret for the external cron trigger (POST /internal/sweep)
    CRON_SECRET: Optional[str] = None

    # Postmark Email
    POSTMARK_API_KEY: str
    FROM_EMAIL: str = "noreply@reindeer-letter.site"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Celery
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None

    # Rate limiting storage (slowapi / limits URI, e.g. "memory://")
    RATE_LIMIT_STORAGE_URL: Optional[str] = None

    # Sentry Monitoring
    SENTRY_DSN: Optional[str] = None

    # Letters
    ALLOW_ANONYMOUS_LETTERS: bool = True
    DRAFT_PLACEHOLDER_TITLE: str = "Untitled draft"
    DRAFT_PLACEHOLDER_BODY: str = ""
    ANONYMOUS_NICKNAME: str = "Anonymous"
    MAX_PAGE_SIZE: int = 100

    # Email verification
    VERIFICATION_CODE_TTL_MINUTES: int = 10
    VERIFICATION_CODE_LENGTH: int = 6

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Set Celery URLs to Redis if not explicitly set
        if not self.CELERY_BROKER_URL:
            self.CELERY_BROKER_URL = self.REDIS_URL
        if not self.CELERY_RESULT_BACKEND:
            self.CELERY_RESULT_BACKEND = self.REDIS_URL
        if not self.RATE_LIMIT_STORAGE_URL:
            self.RATE_LIMIT_STORAGE_URL = self.REDIS_URL

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def database_url_sync(self) -> str:
        """Get synchronous database URL (for Alembic migrations)."""
        return self.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql+psycopg2://")


# Global settings instance
settings = Settings()
