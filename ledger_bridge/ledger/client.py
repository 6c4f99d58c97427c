"""Client for the downstream bookkeeping (ledger) API."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable

import httpx
import structlog

from ledger_bridge.exchange.base import APIError
from ledger_bridge.records.models import CanonicalRecord

logger = structlog.get_logger()


class LedgerError(APIError):
    """Raised when the ledger API cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BaseLedgerClient(ABC):
    """Read and bulk-write operations the sync pipeline needs from the ledger."""

    @abstractmethod
    async def list_known_ids(self) -> set[str]:
        """Return every externalId the ledger already holds."""
        pass

    @abstractmethod
    async def submit_records(self, records: list[CanonicalRecord]) -> None:
        """Insert records in one bulk request. Raises LedgerError on failure."""
        pass

    async def close(self) -> None:
        return None


def extract_external_ids(body: Any) -> set[str]:
    """Collect externalId values from a list response or a records/data envelope."""
    items: Iterable[Any]
    if isinstance(body, list):
        items = body
    elif isinstance(body, dict):
        items = body.get("records", body.get("data", []))
        if not isinstance(items, list):
            raise LedgerError("Ledger records envelope does not hold a list")
    else:
        raise LedgerError(f"Unexpected ledger response type: {type(body).__name__}")

    return {
        str(item["externalId"])
        for item in items
        if isinstance(item, dict) and item.get("externalId")
    }


class LedgerClient(BaseLedgerClient):
    """HTTP ledger client authenticated by a static API key header."""

    def __init__(
        self,
        host: str,
        api_key: str,
        api_key_header: str = "x-api-key",
        records_path: str = "/api/records",
        bulk_path: str = "/api/records/bulk",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the ledger client.

        Args:
            host: Ledger base URL
            api_key: Static API key
            api_key_header: Header name carrying the key
            records_path: Path listing known records
            bulk_path: Path accepting bulk inserts
            timeout: Request timeout in seconds
            http_client: Optional pre-built httpx client (used in tests)
        """
        if not host:
            raise ValueError("LEDGER_HOST is required")
        if not api_key:
            raise ValueError("LEDGER_API_KEY is required")
        self.records_path = records_path
        self.bulk_path = bulk_path
        self._client = http_client or httpx.AsyncClient(
            base_url=host.rstrip("/"),
            timeout=timeout,
            headers={api_key_header: api_key},
        )
        if http_client is not None:
            self._client.headers[api_key_header] = api_key

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise LedgerError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise LedgerError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def list_known_ids(self) -> set[str]:
        response = await self._request("GET", self.records_path)
        try:
            body = response.json()
        except ValueError as e:
            raise LedgerError(f"Non-JSON response from {self.records_path}") from e

        known = extract_external_ids(body)
        logger.debug("ledger.known_ids_fetched", count=len(known))
        return known

    async def submit_records(self, records: list[CanonicalRecord]) -> None:
        payload = {"records": [record.to_payload() for record in records]}
        response = await self._request("POST", self.bulk_path, json=payload)
        logger.info(
            "ledger.records_submitted",
            count=len(records),
            status_code=response.status_code,
        )
