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

    # JWT Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "ShipTrack Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Cron trigger endpoints (Bearer token)
    CRON_SECRET: Optional[str] = None

    # External tracking source
    TRACKING_API_URL: str = ""  # e.g., "https://tracking.example.com/api"
    TRACKING_API_KEY: str = ""
    TRACKING_API_TIMEOUT: float = 10.0  # Seconds per tracking lookup

    # Containers
    DEFAULT_CONTAINER_CAPACITY: int = 4  # Vehicles per container

    # Background scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "UTC"
    STATUS_SYNC_INTERVAL_MINUTES: int = 60  # How often to reconcile with the tracking source
    DELIVERY_ALERT_INTERVAL_MINUTES: int = 360  # How often to reclassify delivery alerts

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
    def tracking_api_enabled(self) -> bool:
        return bool(self.TRACKING_API_URL and self.TRACKING_API_KEY)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
