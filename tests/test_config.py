"""Tests for settings and the derived sync configuration."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from ledger_bridge.core.config import Settings
from ledger_bridge.exchange.binance_client import BinanceClient
from ledger_bridge.exchange.mock_client import MockExchangeClient
from ledger_bridge.ledger.client import LedgerClient
from ledger_bridge.sync.config import SyncConfig, get_sync_config
from ledger_bridge.sync.poller import LedgerSyncPoller
from ledger_bridge.sync.watermark import FileWatermarkStore, MemoryWatermarkStore


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "15")
    monkeypatch.setenv("INITIAL_WATERMARK", "2024-01-01T00:00:00Z")
    monkeypatch.setenv("HOLD_WATERMARK_ON_FAILURE", "true")
    monkeypatch.setenv("EXCHANGE_CLIENT", "mock")

    config = get_sync_config(Settings(_env_file=None))

    assert config.poll_interval_seconds == 15
    assert config.initial_watermark == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert config.hold_watermark_on_failure is True
    assert config.exchange_client_type == "mock"


def test_defaults():
    config = get_sync_config(Settings(_env_file=None))
    assert config.poll_interval_seconds == 60
    assert config.run_on_startup is True
    assert config.hold_watermark_on_failure is False
    assert config.initial_watermark is None


def test_naive_initial_watermark_is_utc():
    config = get_sync_config(Settings(_env_file=None, INITIAL_WATERMARK="2023-01-01T00:00:00"))

    assert config.initial_watermark.tzinfo is not None
    assert config.initial_watermark == datetime(2023, 1, 1, tzinfo=timezone.utc)


def test_interval_must_be_positive():
    with pytest.raises(ValidationError):
        SyncConfig(poll_interval_seconds=0)


def test_poller_builds_clients_from_settings(tmp_path):
    settings = Settings(
        _env_file=None,
        BINANCE_API_KEY="key",
        BINANCE_API_SECRET="secret",
        LEDGER_HOST="https://ledger.test",
        LEDGER_API_KEY="ledger-key",
        WATERMARK_FILE=str(tmp_path / "watermark.json"),
    )
    poller = LedgerSyncPoller(settings=settings)

    assert isinstance(poller.client, BinanceClient)
    assert isinstance(poller.ledger, LedgerClient)
    assert isinstance(poller.watermark_store, FileWatermarkStore)


def test_mock_exchange_needs_no_credentials():
    settings = Settings(
        _env_file=None,
        EXCHANGE_CLIENT="mock",
        LEDGER_HOST="https://ledger.test",
        LEDGER_API_KEY="ledger-key",
    )
    poller = LedgerSyncPoller(settings=settings)

    assert isinstance(poller.client, MockExchangeClient)
    assert isinstance(poller.watermark_store, MemoryWatermarkStore)
