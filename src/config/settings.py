"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PostgresDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the metric-alerts service.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., DATABASE_URL).
    Engine tuning lives in ``AlertConfig`` (``ALERTS_*``) and channel
    credentials in ``ChannelConfig`` (``CHANNELS_*``).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # PostgreSQL (unset = in-memory storage, state lives for the process only)
    database_url: PostgresDsn | None = Field(default=None)
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_keys: str | None = Field(
        default=None,
        description="Comma-separated API keys; unset disables auth (dev mode)",
    )
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True
    request_timeout_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Maximum request duration; 0 disables the timeout middleware",
    )

    # WebSocket alert stream
    ws_alerts_enabled: bool = True
    ws_max_connections: int = Field(default=100, ge=1)
    ws_heartbeat_seconds: int = Field(default=30, ge=1)

    # Observability
    metrics_enabled: bool = True
    metrics_port: int = 8000
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "metric-alerts"
    otel_sample_ratio: float = Field(default=1.0, ge=0, le=1)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def database_configured(self) -> bool:
        """Check if a PostgreSQL database is configured."""
        return self.database_url is not None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
