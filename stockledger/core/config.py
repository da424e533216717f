"""
Stock Ledger Configuration
Core settings for the kitchen stock ledger service
"""
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application Info
    APP_NAME: str = "Kitchen Stock Ledger API"
    APP_VERSION: str = "1.4.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "postgresql://stockledger@localhost:5432/stockledger"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    CRON_SECRET: Optional[str] = None

    # CORS
    CORS_ORIGINS: list = [
        "http://localhost:3000",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"
    BATCH_LOG_FILE: str = "batch.log"

    # Ledger behaviour
    REFERENCE_TIMEZONE: str = "UTC"
    ENFORCE_SNAPSHOT_CUTOFF: bool = True
    QUANTITY_DECIMAL_PLACES: int = 3

    # Catalog enrollment
    DEFAULT_CONTAINER_UNIT: str = "ea"
    SYNC_INGREDIENT_STOCK_GRADES: List[str] = []

    # API Configuration
    API_V1_STR: str = "/api/v1"

    @field_validator("REFERENCE_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names the tz database does not know"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("QUANTITY_DECIMAL_PLACES")
    @classmethod
    def validate_decimal_places(cls, v: int) -> int:
        # Numeric(15, 3) columns hold at most three places
        if not 0 <= v <= 3:
            raise ValueError("QUANTITY_DECIMAL_PLACES must be between 0 and 3")
        return v

    @field_validator("LOG_DIR", mode="before")
    @classmethod
    def coerce_log_dir(cls, v):
        return Path(v) if isinstance(v, str) else v


# Global settings instance
settings = Settings()
