from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes
    DB_STATEMENT_TIMEOUT_SECONDS: float = 15.0  # Upper bound for any single store call

    # JWT Settings (tokens are issued by the identity service, we only verify)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "Stockly Back Office"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Business calendar
    BUSINESS_TIMEZONE: str = "America/Guatemala"

    # Warranty rules
    WARRANTY_EXPIRING_SOON_DAYS: int = 30  # expiring_soon window
    DEFAULT_WARRANTY_MONTHS: int = 12  # Used when a sale does not send warranty_months
    MAX_WARRANTY_MONTHS: int = 120
    ALLOW_SERVICE_ON_DEACTIVATED_WARRANTY: bool = True

    # Pagination
    PAGINATION_DEFAULT_LIMIT: int = 20
    PAGINATION_MAX_LIMIT: int = 100

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    WARRANTY_DIGEST_HOUR: int = 7  # Local hour for the daily expiring-warranty digest

    # Optional override for the seller-facing invoice prefix
    INVOICE_PREFIX: Optional[str] = None

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return list(self.CORS_ORIGINS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
