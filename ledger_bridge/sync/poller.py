"""
Ledger sync poller.

Runs fetch -> normalize -> dedupe -> submit cycles against the exchange
and the ledger, once on demand or continuously on a fixed interval, and
carries the watermark that narrows each cycle's fetch window.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from ledger_bridge.core.config import Settings, get_settings
from ledger_bridge.exchange.base import BaseExchangeClient
from ledger_bridge.exchange.binance_client import BinanceClient
from ledger_bridge.exchange.mock_client import MockExchangeClient
from ledger_bridge.ledger.client import BaseLedgerClient, LedgerClient
from ledger_bridge.records.models import (
    CanonicalRecord,
    TransactionKind,
    coerce_timestamp,
)
from ledger_bridge.sync.config import SyncConfig, get_sync_config
from ledger_bridge.sync.dedup import DeduplicationFilter, DedupResult
from ledger_bridge.sync.fetchers import Fetcher, FetchResult, build_fetchers
from ledger_bridge.sync.metrics import CycleStatus, SyncMetrics
from ledger_bridge.sync.sink import SubmissionSink, SubmitResult
from ledger_bridge.sync.watermark import (
    FileWatermarkStore,
    MemoryWatermarkStore,
    WatermarkStore,
    next_watermark,
)

logger = structlog.get_logger()


def find_orders_awaiting_release(raw_orders: List[Dict[str, Any]]) -> List[str]:
    """Order numbers where the buyer has paid and we, as maker, still hold the crypto."""
    return [
        str(order.get("orderNumber"))
        for order in raw_orders
        if order.get("orderStatus") == "BUYER_PAYED"
        and order.get("advertisementRole") == "MAKER"
    ]


@dataclass
class CycleResult:
    """Everything one cycle produced, including the watermark for the next one."""

    run_id: str
    status: CycleStatus
    previous_watermark: Optional[datetime]
    watermark: Optional[datetime]
    fetch_results: List[FetchResult] = field(default_factory=list)
    dedup: DedupResult = field(default_factory=DedupResult)
    submit: SubmitResult = field(default_factory=SubmitResult)
    awaiting_release: List[str] = field(default_factory=list)

    @property
    def records(self) -> List[CanonicalRecord]:
        return [record for result in self.fetch_results for record in result.records]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "fetched": {r.kind.value: len(r.records) for r in self.fetch_results},
            "fetch_errors": {
                r.kind.value: r.error for r in self.fetch_results if r.failed
            },
            "records_fetched": len(self.records),
            "records_skipped": sum(r.skipped for r in self.fetch_results),
            "records_new": len(self.dedup.new),
            "records_duplicate": len(self.dedup.duplicates),
            "records_submitted": self.submit.submitted,
            "submit_error": self.submit.error,
            "orders_awaiting_release": self.awaiting_release,
            "previous_watermark": (
                self.previous_watermark.isoformat() if self.previous_watermark else None
            ),
            "watermark": self.watermark.isoformat() if self.watermark else None,
        }


class LedgerSyncPoller:
    """
    Main sync service.

    The watermark is explicit state: ``run_cycle`` takes it as a parameter
    and returns the next one, and only ``poll_once`` stores it. Cycles are
    serialized by a lock, so a manual trigger never overlaps the loop.
    """

    def __init__(
        self,
        client: Optional[BaseExchangeClient] = None,
        ledger: Optional[BaseLedgerClient] = None,
        config: Optional[SyncConfig] = None,
        watermark_store: Optional[WatermarkStore] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the poller.

        Args:
            client: Exchange client (defaults to one built from settings)
            ledger: Ledger client (defaults to one built from settings)
            config: Sync configuration (defaults to one built from settings)
            watermark_store: Watermark checkpoint (defaults to file or memory store)
            settings: Process settings used to build the defaults
        """
        self._settings = settings
        self.config = config or get_sync_config(self.settings)
        self.client = client or self._create_default_client()
        self.ledger = ledger or self._create_default_ledger()
        self.watermark_store = watermark_store or self._create_default_store()

        self.fetchers: List[Fetcher] = build_fetchers(self.client, self.config)
        self.dedup = DeduplicationFilter(self.ledger)
        self.sink = SubmissionSink(self.ledger)
        self.metrics = SyncMetrics(history_size=self.config.metrics_history_size)

        start = self.watermark_store.load() or self.config.initial_watermark
        self.watermark: Optional[datetime] = coerce_timestamp(start) if start else None

        self._cycle_lock = asyncio.Lock()
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._last_poll_time: Optional[datetime] = None

        logger.info(
            "poller.initialized",
            client_type=self.client.get_source_name(),
            poll_interval_seconds=self.config.poll_interval_seconds,
            watermark=self.watermark.isoformat() if self.watermark else None,
            hold_watermark_on_failure=self.config.hold_watermark_on_failure,
        )

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def _create_default_client(self) -> BaseExchangeClient:
        """Create the exchange client selected by config."""
        if self.config.exchange_client_type == "mock":
            logger.warning("poller.using_mock_exchange_client")
            return MockExchangeClient()
        return BinanceClient(
            api_key=self.settings.BINANCE_API_KEY,
            api_secret=self.settings.BINANCE_API_SECRET,
            base_url=self.settings.BINANCE_BASE_URL,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            recv_window_ms=self.settings.BINANCE_RECV_WINDOW_MS,
        )

    def _create_default_ledger(self) -> BaseLedgerClient:
        return LedgerClient(
            host=self.settings.LEDGER_HOST or "",
            api_key=self.settings.LEDGER_API_KEY or "",
            api_key_header=self.settings.LEDGER_API_KEY_HEADER,
            records_path=self.settings.LEDGER_RECORDS_PATH,
            bulk_path=self.settings.LEDGER_BULK_PATH,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
        )

    def _create_default_store(self) -> WatermarkStore:
        if self.config.watermark_file:
            return FileWatermarkStore(self.config.watermark_file)
        return MemoryWatermarkStore()

    async def start(self):
        """
        Start the polling loop.

        Runs in the background; each cycle is scheduled only after the
        previous one has finished.
        """
        if self._running:
            logger.warning("poller.already_running")
            return

        self._running = True
        logger.info(
            "poller.started",
            interval_seconds=self.config.poll_interval_seconds,
            run_on_startup=self.config.run_on_startup,
        )
        self._task = asyncio.create_task(self._polling_loop())

    async def stop(self):
        """Stop the polling loop gracefully."""
        if not self._running:
            logger.debug("poller.not_running")
            return

        self._running = False
        logger.info("poller.stopping")

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("poller.stopped")

    async def close(self):
        """Stop polling and release client connections."""
        await self.stop()
        await self.client.close()
        await self.ledger.close()

    async def _polling_loop(self):
        """Single-worker loop: run a cycle, sleep, repeat."""
        first = True
        while self._running:
            try:
                if not (first and self.config.run_on_startup):
                    await asyncio.sleep(self.config.poll_interval_seconds)
                first = False

                if self.config.enabled:
                    await self.poll_once()
                else:
                    logger.debug("poller.disabled_skipping")

            except asyncio.CancelledError:
                logger.info("poller.loop_cancelled")
                break
            except Exception as e:
                logger.error(
                    "poller.loop_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

    async def run_cycle(
        self, watermark: Optional[datetime], run_id: str = "cycle"
    ) -> CycleResult:
        """
        Run one fetch -> dedupe -> submit cycle.

        Args:
            watermark: Lower bound for this cycle's fetch window (None = full history)
            run_id: Identifier used in logs

        Returns:
            CycleResult whose ``watermark`` is the lower bound for the next cycle
        """
        fetch_results = list(
            await asyncio.gather(*(fetcher.fetch(watermark) for fetcher in self.fetchers))
        )
        records = [record for result in fetch_results for record in result.records]

        awaiting_release: List[str] = []
        for result in fetch_results:
            if result.kind == TransactionKind.P2P:
                awaiting_release = find_orders_awaiting_release(result.raw)
        for order_number in awaiting_release:
            # Releasing escrowed crypto is not automated; surface it to the operator.
            logger.warning("p2p.release_required", run_id=run_id, order_number=order_number)

        dedup = await self.dedup.filter(records)
        submit = await self.sink.submit(dedup.new)

        any_fetch_failed = any(result.failed for result in fetch_results)
        if self.config.hold_watermark_on_failure and (submit.failed or any_fetch_failed):
            new_watermark = watermark
            logger.warning(
                "watermark.held",
                run_id=run_id,
                watermark=watermark.isoformat() if watermark else None,
                submit_failed=submit.failed,
                fetch_failed=any_fetch_failed,
            )
        else:
            new_watermark = next_watermark(watermark, records)

        if submit.failed:
            status = CycleStatus.FAILED
        elif (
            any_fetch_failed
            or any(result.skipped for result in fetch_results)
            or not dedup.known_ids_available
        ):
            status = CycleStatus.PARTIAL
        else:
            status = CycleStatus.SUCCESS

        return CycleResult(
            run_id=run_id,
            status=status,
            previous_watermark=watermark,
            watermark=new_watermark,
            fetch_results=fetch_results,
            dedup=dedup,
            submit=submit,
            awaiting_release=awaiting_release,
        )

    async def poll_once(self) -> Dict[str, Any]:
        """
        Execute a single sync cycle and advance the stored watermark.

        Returns:
            Dictionary with cycle results and metrics
        """
        async with self._cycle_lock:
            cycle = self.metrics.start_cycle()
            structlog.contextvars.bind_contextvars(run_id=cycle.run_id)
            logger.info(
                "poll.started",
                source=self.client.get_source_name(),
                watermark=self.watermark.isoformat() if self.watermark else None,
            )
            try:
                result = await self.run_cycle(self.watermark, run_id=cycle.run_id)
            except Exception as e:
                logger.error(
                    "poll.failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                self.metrics.record_error(str(e))
                self.metrics.end_cycle(CycleStatus.FAILED)
                return {"run_id": cycle.run_id, "status": "failed", "error": str(e)}
            finally:
                structlog.contextvars.unbind_contextvars("run_id")

            if result.watermark != self.watermark:
                self.watermark = result.watermark
                self._checkpoint_watermark()

            self._record_cycle(result)
            finished = self.metrics.end_cycle(result.status)
            self._last_poll_time = finished.ended_at if finished else None

            summary = result.to_dict()
            summary["duration_seconds"] = finished.duration_seconds if finished else 0
            logger.info(
                "poll.completed",
                run_id=cycle.run_id,
                status=result.status.value,
                fetched=summary["records_fetched"],
                new=summary["records_new"],
                duplicate=summary["records_duplicate"],
                submitted=summary["records_submitted"],
                watermark=summary["watermark"],
                duration_seconds=summary["duration_seconds"],
            )
            return summary

    async def preview(self) -> Dict[str, Any]:
        """
        Fetch, normalize and deduplicate without submitting.

        Neither the ledger nor the watermark is modified.
        """
        async with self._cycle_lock:
            fetch_results = await asyncio.gather(
                *(fetcher.fetch(self.watermark) for fetcher in self.fetchers)
            )
            records = [record for result in fetch_results for record in result.records]
            dedup = await self.dedup.filter(records)
            return {
                "watermark": self.watermark.isoformat() if self.watermark else None,
                "fetch_errors": {
                    r.kind.value: r.error for r in fetch_results if r.failed
                },
                "records_skipped": sum(r.skipped for r in fetch_results),
                "records_duplicate": len(dedup.duplicates),
                "records_new": [record.to_payload() for record in dedup.new],
            }

    def _checkpoint_watermark(self):
        try:
            self.watermark_store.save(self.watermark)
        except OSError as e:
            logger.error("watermark.checkpoint_failed", error=str(e))
            self.metrics.record_error(f"Watermark checkpoint failed: {e}")

    def _record_cycle(self, result: CycleResult):
        cycle = self.metrics.get_current_cycle()
        if cycle is None:
            return
        cycle.fetched = {r.kind.value: len(r.records) for r in result.fetch_results}
        cycle.records_fetched = len(result.records)
        cycle.records_skipped = sum(r.skipped for r in result.fetch_results)
        cycle.records_new = len(result.dedup.new)
        cycle.records_duplicate = len(result.dedup.duplicates)
        cycle.records_submitted = result.submit.submitted
        cycle.orders_awaiting_release = len(result.awaiting_release)
        cycle.watermark = result.watermark
        for fetch_result in result.fetch_results:
            if fetch_result.failed:
                self.metrics.record_error(f"{fetch_result.kind.value}: {fetch_result.error}")
        if not result.dedup.known_ids_available:
            self.metrics.record_error("Known ids unavailable; deduplication skipped")
        if result.submit.failed:
            self.metrics.record_error(f"Submission failed: {result.submit.error}")

    def get_status(self) -> Dict[str, Any]:
        """Current poller status and metrics."""
        current = self.metrics.get_current_cycle()
        last = self.metrics.get_last_cycle()
        aggregate = self.metrics.get_aggregate_metrics(hours=24)

        return {
            "running": self._running,
            "enabled": self.config.enabled,
            "last_poll_time": (
                self._last_poll_time.isoformat() if self._last_poll_time else None
            ),
            "watermark": self.watermark.isoformat() if self.watermark else None,
            "fetchers": [fetcher.get_state() for fetcher in self.fetchers],
            "current_run": current.to_dict() if current else None,
            "last_run": last.to_dict() if last else None,
            "metrics_24h": aggregate.to_dict(),
            "success_rate_24h": self.metrics.get_success_rate(hours=24),
            "config": {
                "poll_interval_seconds": self.config.poll_interval_seconds,
                "hold_watermark_on_failure": self.config.hold_watermark_on_failure,
                "source": self.client.get_source_name(),
            },
        }

    def get_metrics(self, hours: Optional[int] = None) -> Dict[str, Any]:
        """Aggregate metrics plus the most recent cycles."""
        aggregate = self.metrics.get_aggregate_metrics(hours)
        return {
            "enabled": self.config.enabled,
            "aggregate": aggregate.to_dict(),
            "success_rate": self.metrics.get_success_rate(hours),
            "recent_runs": [r.to_dict() for r in self.metrics.get_history(limit=10)],
        }
