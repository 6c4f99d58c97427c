"""Exchange API client implementations."""

from ledger_bridge.exchange.base import (
    APIAuthenticationError,
    APIConnectionError,
    APIError,
    APIRateLimitError,
    APIValidationError,
    BaseExchangeClient,
)
from ledger_bridge.exchange.binance_client import BinanceClient
from ledger_bridge.exchange.mock_client import MockExchangeClient

__all__ = [
    "APIAuthenticationError",
    "APIConnectionError",
    "APIError",
    "APIRateLimitError",
    "APIValidationError",
    "BaseExchangeClient",
    "BinanceClient",
    "MockExchangeClient",
]
