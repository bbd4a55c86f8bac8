# tradedesk/core/config.py

import os
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from decimal import Decimal
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Load environment variables
dotenv_path = os.path.join(os.path.dirname(__file__), '..', '..', '.env')
loaded = load_dotenv(dotenv_path=dotenv_path)

if loaded:
    logger.info(".env file loaded successfully.")
else:
    logger.debug(".env file not found or not loaded.")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Project Settings ---
    PROJECT_NAME: str = "Trade Desk"
    API_V1_STR: str = "/api/v1"

    # --- Database Settings ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./tradedesk.db"
    ECHO_SQL: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # --- JWT Settings ---
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # --- Redis Settings ---
    REDIS_HOST: str = "127.0.0.1"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # --- Price Oracle Settings ---
    # "redis" reads the last known price written by the market feed,
    # "coinmarketcap" queries the quotes API directly.
    PRICE_ORACLE: str = "redis"
    PRICE_API_URL: str = "https://pro-api.coinmarketcap.com/v2/cryptocurrency/quotes/latest"
    PRICE_API_KEY: str = ""
    PRICE_TIMEOUT_SECONDS: float = 5.0
    PRICE_MAX_AGE_SECONDS: int = 60

    # --- Settlement Settings ---
    SETTLEMENT_ENABLED: bool = True
    SETTLEMENT_INTERVAL_SECONDS: int = 2
    SETTLEMENT_BATCH_SIZE: int = 10
    SETTINGS_CACHE_TTL_SECONDS: float = 30.0
    # Creates missing tables on startup; production databases go through Alembic
    AUTO_CREATE_TABLES: bool = True

    # --- Wallet Settings ---
    MIN_WITHDRAWAL_USDT: Decimal = Decimal("10")

    # --- Logging ---
    LOG_DIR: str = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'logs')


@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the Settings class.
    """
    settings_instance = Settings()
    logger.info(f"Settings instance loaded. Project: {settings_instance.PROJECT_NAME}, API Prefix: {settings_instance.API_V1_STR}")
    return settings_instance


settings = get_settings()
