"""
Application settings.
Loaded from environment variables and .env.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Configuration loaded from .env"""

    # App
    APP_NAME: str = "Campaign Engine"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Storage: "supabase" | "memory"
    # memory keeps everything in-process (local development, single worker)
    STORAGE_BACKEND: str = "supabase"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Delivery receipts: "redis" (stream + worker) | "direct" (in-process)
    RECEIPT_TRANSPORT: str = "redis"
    RECEIPT_STREAM: str = "vendor:receipts"
    RECEIPT_CONSUMER_GROUP: str = "receipt-reconciler"

    # Vendor simulator
    VENDOR_SUCCESS_RATE: float = 0.9
    VENDOR_SEND_DELAY_MAX_SECONDS: float = 1.0
    VENDOR_RECEIPT_DELAY_MIN_SECONDS: float = 1.0
    VENDOR_RECEIPT_DELAY_MAX_SECONDS: float = 6.0

    # Dispatch
    DISPATCH_MAX_CONCURRENCY: int = 50

    # Query limits
    SEGMENT_CUSTOMERS_LIMIT: int = 100
    CAMPAIGN_LOGS_LIMIT: int = 100

    # CORS - allowed origins (comma separated)
    CORS_ORIGINS: str = "*"

    @property
    def is_production(self) -> bool:
        """True when ENVIRONMENT == 'production'."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Allowed CORS origins.

        Must be set explicitly in production.
        """
        if self.CORS_ORIGINS == "*":
            if self.is_production:
                import logging
                logging.warning(
                    "CORS_ORIGINS='*' in production. "
                    "Configure explicit origins."
                )
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class DispatchConfig:
    """
    Limits applied to segment and campaign input.

    Kept outside Settings because they are part of the API contract,
    not deployment knobs.
    """

    NAME_MIN_CHARS: int = 2
    NAME_MAX_CHARS: int = 100
    DESCRIPTION_MAX_CHARS: int = 500
    MESSAGE_MIN_CHARS: int = 10
    MESSAGE_MAX_CHARS: int = 1000
    DAYS_SINCE_MAX: int = 36500


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
