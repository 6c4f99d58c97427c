from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings loaded from environment variables and .env file.

    Values gate the sync behaviour (credentials, ledger endpoint, polling
    interval, starting watermark) but are owned by the process, not the core.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: selects the log renderer."""

    DEBUG: bool = False
    """Enable debug logging."""

    LOG_LEVEL: str = "INFO"
    """Root log level when DEBUG is off."""

    # Exchange
    EXCHANGE_CLIENT: Literal["binance", "mock"] = "binance"
    """Exchange client implementation. 'mock' generates synthetic transactions."""

    BINANCE_API_KEY: Optional[str] = None
    """Binance API key, sent as the X-MBX-APIKEY header."""

    BINANCE_API_SECRET: Optional[str] = None
    """Binance API secret used to sign requests."""

    BINANCE_BASE_URL: str = "https://api.binance.com"
    """Binance REST base URL."""

    BINANCE_RECV_WINDOW_MS: int = 5000
    """recvWindow sent with every signed request."""

    # Ledger
    LEDGER_HOST: Optional[str] = None
    """Base URL of the downstream bookkeeping API."""

    LEDGER_API_KEY: Optional[str] = None
    """Static API key for the bookkeeping API."""

    LEDGER_API_KEY_HEADER: str = "x-api-key"
    """Header carrying LEDGER_API_KEY."""

    LEDGER_RECORDS_PATH: str = "/api/records"
    """Path listing records already known to the ledger."""

    LEDGER_BULK_PATH: str = "/api/records/bulk"
    """Path accepting a bulk insert of new records."""

    HTTP_TIMEOUT_SECONDS: float = 30.0
    """Timeout applied to every exchange and ledger request."""

    # Polling
    POLL_INTERVAL_SECONDS: int = 60
    """Seconds between the end of one cycle and the start of the next."""

    RUN_ON_STARTUP: bool = True
    """Run a cycle immediately when the poller starts."""

    INITIAL_WATERMARK: Optional[datetime] = None
    """Lower bound for the first fetch. Unset means full history."""

    HOLD_WATERMARK_ON_FAILURE: bool = False
    """Keep the watermark in place when a fetch or the submission failed."""

    WATERMARK_FILE: Optional[str] = None
    """JSON file used to checkpoint the watermark across restarts."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()
