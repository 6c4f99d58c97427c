"""
Per-kind fetchers.

Each fetcher calls one exchange history endpoint with the current
watermark as lower bound, then normalizes every returned transaction.
Failures never escape: a failed kind yields an empty result for the
cycle and a bad transaction is skipped on its own.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog

from ledger_bridge.exchange.base import (
    APIConnectionError,
    APIError,
    APIRateLimitError,
    BaseExchangeClient,
)
from ledger_bridge.records.models import CanonicalRecord, TransactionKind
from ledger_bridge.records.normalizer import NORMALIZERS, NormalizationError
from ledger_bridge.sync.config import CircuitBreakerConfig, RetryConfig, SyncConfig
from ledger_bridge.sync.retry import CircuitBreaker, retry_with_backoff

logger = structlog.get_logger()

FetchFunc = Callable[[Optional[datetime]], Awaitable[List[Dict[str, Any]]]]
Normalizer = Callable[[Any], CanonicalRecord]

TRANSIENT_ERRORS = (APIConnectionError, APIRateLimitError, httpx.TransportError)


@dataclass
class FetchResult:
    """Outcome of one fetcher for one cycle."""

    kind: TransactionKind
    records: List[CanonicalRecord] = field(default_factory=list)
    raw: List[Dict[str, Any]] = field(default_factory=list)
    skipped: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class Fetcher:
    """Fetch-and-normalize for one upstream transaction kind."""

    def __init__(
        self,
        kind: TransactionKind,
        fetch_func: FetchFunc,
        normalizer: Normalizer,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
    ):
        self.kind = kind
        self.fetch_func = fetch_func
        self.normalizer = normalizer
        self.retry_config = retry_config or RetryConfig()
        self.circuit_breaker = CircuitBreaker(
            circuit_breaker_config or CircuitBreakerConfig(), name=kind.value
        )

    async def fetch(self, since: Optional[datetime]) -> FetchResult:
        """
        Fetch and normalize transactions at or after ``since``.

        Args:
            since: Inclusive lower bound; None on the first cycle fetches full history

        Returns:
            FetchResult with records in upstream order
        """
        result = FetchResult(kind=self.kind)

        async def call() -> List[Dict[str, Any]]:
            return await self.fetch_func(since)

        async def call_with_retry() -> List[Dict[str, Any]]:
            return await retry_with_backoff(
                call,
                self.retry_config,
                operation_name=f"fetch_{self.kind.value}",
                retry_on=TRANSIENT_ERRORS,
            )

        try:
            raw_items = await self.circuit_breaker.call_async(call_with_retry)
            if not isinstance(raw_items, list):
                raise APIError(f"Expected a list of {self.kind.value} transactions")
        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            logger.error(
                "fetch.failed",
                kind=self.kind.value,
                since=since.isoformat() if since else None,
                error=str(e),
                error_type=type(e).__name__,
            )
            return result

        result.raw = raw_items
        for idx, raw in enumerate(raw_items):
            try:
                result.records.append(self.normalizer(raw))
            except NormalizationError as e:
                result.skipped += 1
                logger.warning(
                    "normalize.skipped",
                    kind=self.kind.value,
                    upstream_id=e.upstream_id,
                    idx=idx,
                    error=str(e),
                )
            except Exception as e:
                result.skipped += 1
                logger.error(
                    "normalize.unexpected_error",
                    kind=self.kind.value,
                    idx=idx,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

        logger.info(
            "fetch.completed",
            kind=self.kind.value,
            since=since.isoformat() if since else None,
            fetched=len(raw_items),
            normalized=len(result.records),
            skipped=result.skipped,
        )
        return result

    def get_state(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "circuit_breaker": self.circuit_breaker.get_state()}


def _bound(client: BaseExchangeClient, method_name: str) -> FetchFunc:
    async def fetch_func(since: Optional[datetime]) -> List[Dict[str, Any]]:
        return await getattr(client, method_name)(since)

    return fetch_func


def build_fetchers(client: BaseExchangeClient, config: SyncConfig) -> List[Fetcher]:
    """Create the P2P, pay and deposit fetchers bound to one exchange client."""
    bindings = [
        (TransactionKind.P2P, "list_p2p_orders"),
        (TransactionKind.PAY, "list_pay_transactions"),
        (TransactionKind.DEPOSIT, "list_deposits"),
    ]
    return [
        Fetcher(
            kind,
            _bound(client, method_name),
            NORMALIZERS[kind],
            retry_config=config.retry,
            circuit_breaker_config=config.circuit_breaker,
        )
        for kind, method_name in bindings
    ]
