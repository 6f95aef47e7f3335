"""
Settings for the tailor ops backend
Environment variables override every default below
"""

import logging
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

BALANCE_UPDATE_MODES = ("legacy", "transactional")
STORAGE_BACKENDS = ("sql", "memory")


class Settings(BaseSettings):
    """Settings for deployment"""
    # Storage
    DATABASE_URL: str = ""
    STORAGE_BACKEND: str = "sql"
    TRANSACTION_MAX_ATTEMPTS: int = 5
    TRANSACTION_RETRY_DELAY: float = 0.05

    # Balance recomputation on order update:
    # "legacy" recomputes after the update outside any transaction,
    # "transactional" runs update and recomputation in one transaction
    BALANCE_UPDATE_MODE: str = "legacy"

    # Twilio
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    # Realtime
    REALTIME_BROADCAST: bool = False

    # Other settings
    TIMEZONE: str = "UTC"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def get_database_url(settings: Optional[Settings] = None) -> str:
    """Get async database URL from settings"""
    settings = settings or get_settings()
    database_url = settings.DATABASE_URL

    if not database_url:
        # Fallback to SQLite for local development
        database_url = "sqlite:///./tailor_ops.db"
        logger.warning("No DATABASE_URL found, using SQLite for local development")

    # Handle Heroku's postgres:// URL format
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("sqlite://"):
        database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    return database_url
