"""Alert engine configuration.

Controls the monitoring interval, per-threshold fetch timeouts, action
timeouts, default cooldowns, and the persistence writer's retry policy.
All settings can be overridden via ``ALERTS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlertConfig(BaseSettings):
    """Configuration for the threshold alerting engine."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Monitoring loop
    check_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between two evaluation passes over all thresholds",
    )
    metric_fetch_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Time box for one metric fetch; a timeout skips the threshold",
    )
    listener_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Time box for one async event listener; a slow listener is cancelled",
    )
    monitoring_enabled: bool = Field(
        default=True,
        description="Start the periodic monitoring loop with the engine",
    )

    # Action dispatch
    action_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Time box for executing one action against its channel",
    )
    action_max_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Attempts per action before it is reported as failed",
    )
    action_retry_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay between two attempts of the same action",
    )

    # Thresholds
    default_cooldown_minutes: float = Field(
        default=60.0,
        ge=0,
        description="Cooldown applied when a threshold does not set one",
    )
    seed_default_thresholds: bool = Field(
        default=True,
        description="Install the default threshold catalogue when none are stored",
    )

    # Reporting
    top_triggered_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Entries in the most-frequently-triggered list",
    )
    list_limit_default: int = Field(
        default=100,
        ge=1,
        description="Default maximum alerts returned by list operations",
    )

    # Persistence writer
    persistence_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum writes buffered before new writes are dropped",
    )
    persistence_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per write before it is dropped",
    )
    persistence_retry_base_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Base delay for exponential backoff between write attempts",
    )
    persistence_retry_max_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Upper bound for a single backoff delay",
    )
