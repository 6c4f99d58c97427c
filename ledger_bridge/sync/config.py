"""
Sync poller configuration.

Defines settings for the polling interval, watermark policy, retry
policies and exchange client selection.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ledger_bridge.core.config import Settings, get_settings
from ledger_bridge.records.models import coerce_timestamp


class RetryConfig(BaseModel):
    """Configuration for retry behavior with exponential backoff."""

    max_attempts: int = Field(default=3, ge=1, description="Maximum retry attempts")
    initial_delay: float = Field(
        default=1.0, gt=0, description="Initial delay in seconds"
    )
    max_delay: float = Field(default=30.0, gt=0, description="Maximum delay in seconds")
    exponential_base: float = Field(default=2.0, gt=1, description="Backoff multiplier")
    jitter: bool = Field(
        default=True, description="Add random jitter to prevent thundering herd"
    )


class CircuitBreakerConfig(BaseModel):
    """Configuration for the per-kind circuit breaker."""

    failure_threshold: int = Field(
        default=5, ge=1, description="Failed cycles before opening circuit"
    )
    success_threshold: int = Field(
        default=1, ge=1, description="Successes to close circuit"
    )
    timeout: float = Field(
        default=300.0, gt=0, description="Seconds before attempting reset"
    )


class SyncConfig(BaseModel):
    """Main sync poller configuration."""

    # Polling behavior
    poll_interval_seconds: int = Field(
        default=60, ge=1, description="Seconds between polling cycles"
    )
    run_on_startup: bool = Field(
        default=True, description="Run a cycle immediately on startup"
    )
    enabled: bool = Field(default=True, description="Enable/disable poller")

    # Exchange client settings
    exchange_client_type: str = Field(
        default="binance", description="Type of exchange client (binance, mock)"
    )

    # Watermark
    initial_watermark: Optional[datetime] = Field(
        default=None, description="Lower bound for the first fetch; None fetches full history"
    )
    hold_watermark_on_failure: bool = Field(
        default=False,
        description="Do not advance the watermark when a fetch or the submission failed",
    )
    watermark_file: Optional[str] = Field(
        default=None, description="JSON checkpoint file for the watermark"
    )

    # Retry and resilience
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)

    # Metrics
    metrics_history_size: int = Field(
        default=100, ge=1, description="Completed cycles kept in memory"
    )

    @field_validator("initial_watermark", mode="before")
    @classmethod
    def _utc_watermark(cls, value: Any) -> Optional[datetime]:
        # Record dates are UTC-aware; a naive start would not compare with them.
        if value is None or value == "":
            return None
        return coerce_timestamp(value)


def get_sync_config(settings: Optional[Settings] = None) -> SyncConfig:
    """Build the sync configuration from process settings."""
    settings = settings or get_settings()
    return SyncConfig(
        poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
        run_on_startup=settings.RUN_ON_STARTUP,
        exchange_client_type=settings.EXCHANGE_CLIENT,
        initial_watermark=settings.INITIAL_WATERMARK,
        hold_watermark_on_failure=settings.HOLD_WATERMARK_ON_FAILURE,
        watermark_file=settings.WATERMARK_FILE,
    )
