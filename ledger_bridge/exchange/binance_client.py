"""
Binance REST client for P2P, deposit and Pay history.

All three endpoints are SIGNED: the query string (including timestamp and
recvWindow) is signed with HMAC-SHA256 using the API secret and the key is
sent in the X-MBX-APIKEY header.
"""

import hashlib
import hmac
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
import structlog

from ledger_bridge.exchange.base import (
    APIAuthenticationError,
    APIConnectionError,
    APIError,
    APIRateLimitError,
    APIValidationError,
    BaseExchangeClient,
)

logger = structlog.get_logger()

P2P_HISTORY_PATH = "/sapi/v1/c2c/orderMatch/listUserOrderHistory"
DEPOSIT_HISTORY_PATH = "/sapi/v1/capital/deposit/hisrec"
PAY_HISTORY_PATH = "/sapi/v1/pay/transactions"
API_RESTRICTIONS_PATH = "/sapi/v1/account/apiRestrictions"

P2P_PAGE_SIZE = 100
DEPOSIT_PAGE_SIZE = 1000
PAY_PAGE_SIZE = 100

# Guards against an upstream that keeps returning full pages forever.
MAX_PAGES = 50


def to_epoch_ms(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds; naive values are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


class BinanceClient(BaseExchangeClient):
    """Signed REST client for the Binance SAPI history endpoints."""

    DEFAULT_BASE_URL = "https://api.binance.com"

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        recv_window_ms: int = 5000,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Binance client.

        Args:
            api_key: Binance API key
            api_secret: Binance API secret
            base_url: REST base URL (defaults to api.binance.com)
            timeout: Request timeout in seconds
            recv_window_ms: recvWindow sent with signed requests
            http_client: Optional pre-built httpx client (used in tests)
        """
        super().__init__(api_key, api_secret, base_url or self.DEFAULT_BASE_URL, timeout)
        if not self.api_key or not self.api_secret:
            raise ValueError("BINANCE_API_KEY and BINANCE_API_SECRET are required")
        self.recv_window_ms = recv_window_ms
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout
        )

    def get_source_name(self) -> str:
        """Return source identifier."""
        return "binance"

    async def close(self) -> None:
        await self._client.aclose()

    def sign(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Return params with timestamp, recvWindow and signature appended."""
        signed = {k: v for k, v in params.items() if v is not None}
        signed["recvWindow"] = self.recv_window_ms
        signed["timestamp"] = int(time.time() * 1000)
        query_string = urlencode(signed)
        signed["signature"] = hmac.new(
            self.api_secret.encode(),
            query_string.encode(),
            hashlib.sha256,
        ).hexdigest()
        return signed

    async def _signed_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Issue a signed GET and return the decoded JSON body."""
        signed = self.sign(params or {})
        try:
            response = await self._client.get(
                path,
                params=signed,
                headers={"X-MBX-APIKEY": self.api_key},
            )
        except httpx.TimeoutException as e:
            raise APIConnectionError(f"Request to {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise APIConnectionError(f"Network error calling {path}: {e}") from e

        if response.status_code in (401, 403):
            raise APIAuthenticationError(
                f"Authentication failed for {path}: HTTP {response.status_code} {response.text[:200]}"
            )
        if response.status_code in (418, 429):
            raise APIRateLimitError(
                f"Rate limited on {path}: HTTP {response.status_code}"
            )
        if response.status_code >= 500:
            raise APIConnectionError(
                f"Server error on {path}: HTTP {response.status_code}"
            )
        if response.status_code >= 400:
            raise APIError(
                f"Request to {path} failed: HTTP {response.status_code} {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise APIValidationError(f"Non-JSON response from {path}") from e

    @staticmethod
    def _unwrap(body: Any, path: str) -> List[Dict[str, Any]]:
        """Extract the data list from a {code, message, data} envelope."""
        if not isinstance(body, dict):
            raise APIValidationError(f"Expected an object from {path}, got {type(body).__name__}")
        if body.get("success") is False or body.get("code") not in (None, "000000", 0, "0"):
            raise APIError(
                f"{path} returned code={body.get('code')} message={body.get('message')}"
            )
        data = body.get("data") or []
        if not isinstance(data, list):
            raise APIValidationError(f"Expected a list in {path} data")
        return data

    async def list_p2p_orders(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Fetch C2C trade history, following pages until a short page."""
        orders: List[Dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            body = await self._signed_get(
                P2P_HISTORY_PATH,
                {
                    "startTimestamp": to_epoch_ms(since) if since else None,
                    "page": page,
                    "rows": P2P_PAGE_SIZE,
                },
            )
            batch = self._unwrap(body, P2P_HISTORY_PATH)
            orders.extend(batch)
            if len(batch) < P2P_PAGE_SIZE:
                break
        logger.debug("binance.p2p_orders_fetched", count=len(orders))
        return orders

    async def list_deposits(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Fetch deposit history, following offsets until a short page."""
        deposits: List[Dict[str, Any]] = []
        for page in range(MAX_PAGES):
            body = await self._signed_get(
                DEPOSIT_HISTORY_PATH,
                {
                    "startTime": to_epoch_ms(since) if since else None,
                    "offset": page * DEPOSIT_PAGE_SIZE,
                    "limit": DEPOSIT_PAGE_SIZE,
                },
            )
            if not isinstance(body, list):
                raise APIValidationError(
                    f"Expected a list from {DEPOSIT_HISTORY_PATH}, got {type(body).__name__}"
                )
            deposits.extend(body)
            if len(body) < DEPOSIT_PAGE_SIZE:
                break
        logger.debug("binance.deposits_fetched", count=len(deposits))
        return deposits

    async def list_pay_transactions(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Fetch Binance Pay history (single page of up to 100 transactions)."""
        # TODO: walk older pages by moving endTime when a full page comes back
        body = await self._signed_get(
            PAY_HISTORY_PATH,
            {
                "startTime": to_epoch_ms(since) if since else None,
                "limit": PAY_PAGE_SIZE,
            },
        )
        transactions = self._unwrap(body, PAY_HISTORY_PATH)
        logger.debug("binance.pay_transactions_fetched", count=len(transactions))
        return transactions

    async def validate_credentials(self) -> bool:
        """Check the key against the API restrictions endpoint."""
        try:
            await self._signed_get(API_RESTRICTIONS_PATH)
            return True
        except APIAuthenticationError:
            return False
