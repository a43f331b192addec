"""
Configuration module - Central access point for environment variables.

CRITICAL: Access ALL environment variables through this module.
NEVER use os.getenv() directly in application code.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Firebase / Firestore
    FIREBASE_PROJECT_ID: str = Field(
        default="",
        description="Google Cloud project hosting the Firestore database"
    )
    FIREBASE_CREDENTIALS_JSON: str = Field(
        default="",
        description="Path to the Firebase service account JSON key file (empty = application default credentials)"
    )

    # Google Calendar API
    GOOGLE_SERVICE_ACCOUNT_JSON: str = Field(
        default="/path/to/service-account-key.json",
        description="Path to Google service account JSON key file"
    )
    GOOGLE_CLIENT_EMAIL: str = Field(
        default="",
        description="Service account e-mail, used to derive fallback calendar IDs"
    )
    GCAL_MAX_RETRIES: int = Field(
        default=3,
        description="Attempts for transient Google Calendar errors (429/5xx)"
    )

    # Calendar ID cache
    CALENDAR_CACHE_TTL_SECONDS: int = Field(default=1800)
    CALENDAR_CACHE_MAX_SIZE: int = Field(default=1000)

    # Bookings
    DEFAULT_BOOKING_DURATION_MINUTES: int = Field(default=60)

    # Application Settings
    TIMEZONE: str = Field(default="Asia/Manila")
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()
