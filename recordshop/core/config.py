# recordshop/core/config.py

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Discogs marketplace
    DISCOGS_USERNAME: str = ""
    DISCOGS_TOKEN: str = ""
    DISCOGS_USER_AGENT: str = "RecordShopInventorySync/1.0"
    DISCOGS_BASE_URL: str = "https://api.discogs.com"
    DISCOGS_PAGE_SIZE: int = 100
    DISCOGS_PAGE_DELAY_SECONDS: float = 1.1   # Discogs allows ~60 authenticated requests/minute
    DISCOGS_REQUEST_TIMEOUT: float = 30.0

    # Store owner (the account whose Discogs inventory is mirrored)
    STORE_OWNER_ID: Optional[int] = None

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "usd"
    FRONTEND_URL: str = "http://localhost:3000"

    # Settlement
    SETTLEMENT_TIMEOUT_SECONDS: float = 60.0

    # Scheduled inventory sync
    SYNC_SCHEDULE_ENABLED: bool = False
    SYNC_CRON_HOUR: int = 3
    SYNC_CRON_MINUTE: int = 0
    SYNC_TIMEZONE: str = "UTC"

    # Basic Auth for admin endpoints
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: Optional[str] = None

    # SMTP / Email
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 30
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: Optional[str] = None

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()



def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
