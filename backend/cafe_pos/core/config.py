"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Local durable store (pending queue + mirror of remote rows)
    local_database_url: str = "sqlite:///./data/cafe_pos_local.db"

    # ==========================================================================
    # Remote row-store (Supabase / PostgREST)
    # ==========================================================================
    remote_url: Optional[str] = None
    remote_api_key: str = ""
    remote_schema: str = "public"

    # Breaker: how long to prefer the local fallback after a network failure
    remote_retry_delay_seconds: float = 30.0

    # Pending queue replay
    pending_sync_batch_size: int = 20
    remote_operation_timeout_seconds: float = 10.0

    # Wall-clock zone used for production cutoffs and end-of-day rules
    timezone: str = "America/Mexico_City"

    # Compliance
    pest_control_table: str = "pest_control_logs"
    pest_control_alert_days: int = 80

    # Remote tables
    orders_table: str = "orders"
    order_items_table: str = "order_items"
    tickets_table: str = "tickets"
    reservations_table: str = "reservations"
    waste_logs_table: str = "waste_logs"

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    @field_validator("pending_sync_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("PENDING_SYNC_BATCH_SIZE must be at least 1")
        return v

    @field_validator("remote_retry_delay_seconds", "remote_operation_timeout_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays and timeouts cannot be negative")
        return v

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_url and self.remote_api_key)

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
