"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Ledger Reconciliation Engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = _env_flag("DEBUG")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/ledger_recon"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Money
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "USD")

    # Allocation engine
    ALLOCATION_MAX_RETRIES: int = int(os.getenv("ALLOCATION_MAX_RETRIES", "3"))

    # Point-of-sale ingestion
    # With no POS_API_KEY the endpoints refuse every request unless
    # POS_ALLOW_UNAUTHENTICATED is explicitly switched on.
    POS_API_KEY: str | None = os.getenv("POS_API_KEY") or None
    POS_ALLOW_UNAUTHENTICATED: bool = _env_flag("POS_ALLOW_UNAUTHENTICATED")
    POS_RATE_LIMIT_PER_MINUTE: int = int(
        os.getenv("POS_RATE_LIMIT_PER_MINUTE", "30")
    )
    POS_MAX_AMOUNT: Decimal = Decimal(os.getenv("POS_MAX_AMOUNT", "999999999"))


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
