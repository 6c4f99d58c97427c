"""
Sync cycle metrics.

Tracks per-cycle counts (fetched, skipped, duplicates, submitted), errors
and durations, and aggregates them over recent history.
"""

from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional


class CycleStatus(str, Enum):
    """Outcome of one sync cycle."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Something degraded, but every record fetched was handled
    FAILED = "failed"  # The bulk submission failed; fetched records were not delivered


@dataclass
class CycleMetrics:
    """Metrics for a single sync cycle."""

    run_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: CycleStatus = CycleStatus.SUCCESS

    # Record counts
    fetched: Dict[str, int] = field(default_factory=dict)
    records_fetched: int = 0
    records_skipped: int = 0
    records_new: int = 0
    records_duplicate: int = 0
    records_submitted: int = 0
    orders_awaiting_release: int = 0

    duration_seconds: float = 0.0

    # Error tracking
    errors: List[str] = field(default_factory=list)
    error_count: int = 0

    watermark: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["ended_at"] = self.ended_at.isoformat() if self.ended_at else None
        data["watermark"] = self.watermark.isoformat() if self.watermark else None
        data["status"] = self.status.value
        return data


@dataclass
class AggregateMetrics:
    """Totals over a window of completed cycles."""

    total_runs: int = 0
    successful_runs: int = 0
    partial_runs: int = 0
    failed_runs: int = 0

    total_fetched: int = 0
    total_submitted: int = 0
    total_duplicates: int = 0
    total_skipped: int = 0
    total_errors: int = 0

    avg_duration_seconds: float = 0.0

    last_run: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    @classmethod
    def from_cycles(cls, cycles: List[CycleMetrics]) -> "AggregateMetrics":
        """Summarize cycles given oldest first."""
        if not cycles:
            return cls()

        by_status = Counter(cycle.status for cycle in cycles)
        successes = [c.started_at for c in cycles if c.status == CycleStatus.SUCCESS]
        failures = [c.started_at for c in cycles if c.status == CycleStatus.FAILED]

        return cls(
            total_runs=len(cycles),
            successful_runs=by_status[CycleStatus.SUCCESS],
            partial_runs=by_status[CycleStatus.PARTIAL],
            failed_runs=by_status[CycleStatus.FAILED],
            total_fetched=sum(c.records_fetched for c in cycles),
            total_submitted=sum(c.records_submitted for c in cycles),
            total_duplicates=sum(c.records_duplicate for c in cycles),
            total_skipped=sum(c.records_skipped for c in cycles),
            total_errors=sum(c.error_count for c in cycles),
            avg_duration_seconds=sum(c.duration_seconds for c in cycles) / len(cycles),
            last_run=cycles[-1].started_at,
            last_success=successes[-1] if successes else None,
            last_failure=failures[-1] if failures else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("last_run", "last_success", "last_failure"):
            value = data[key]
            data[key] = value.isoformat() if value else None
        return data


class SyncMetrics:
    """
    In-memory metrics for the sync poller.

    Holds the cycle in progress plus the last ``history_size`` completed
    cycles. Nothing survives a restart.
    """

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self._current: Optional[CycleMetrics] = None
        self._history: Deque[CycleMetrics] = deque(maxlen=history_size)
        self._cycles_started = 0

    def start_cycle(self) -> CycleMetrics:
        """Open a metrics record for a new cycle and return it."""
        self._cycles_started += 1
        now = datetime.now(timezone.utc)
        self._current = CycleMetrics(
            run_id=f"sync-{now:%Y%m%d-%H%M%S}-{self._cycles_started}",
            started_at=now,
        )
        return self._current

    def end_cycle(self, status: CycleStatus) -> Optional[CycleMetrics]:
        """Stamp the current cycle with its outcome and move it into history."""
        cycle, self._current = self._current, None
        if cycle is None:
            return None
        cycle.ended_at = datetime.now(timezone.utc)
        cycle.status = status
        cycle.duration_seconds = (cycle.ended_at - cycle.started_at).total_seconds()
        self._history.append(cycle)
        return cycle

    def record_error(self, error: str):
        if self._current is not None:
            self._current.errors.append(error)
            self._current.error_count += 1

    def get_current_cycle(self) -> Optional[CycleMetrics]:
        return self._current

    def get_last_cycle(self) -> Optional[CycleMetrics]:
        return self._history[-1] if self._history else None

    def get_history(self, limit: Optional[int] = None) -> List[CycleMetrics]:
        """Completed cycles, newest first."""
        newest_first = list(reversed(self._history))
        return newest_first[:limit] if limit else newest_first

    def _window(self, hours: Optional[int]) -> List[CycleMetrics]:
        if not hours:
            return list(self._history)
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        return [cycle for cycle in self._history if cycle.started_at >= since]

    def get_aggregate_metrics(self, hours: Optional[int] = None) -> AggregateMetrics:
        """Totals over the last ``hours`` hours, or all kept history when None."""
        return AggregateMetrics.from_cycles(self._window(hours))

    def get_success_rate(self, hours: Optional[int] = None) -> float:
        """Fraction of cycles (0.0 to 1.0) that ended with SUCCESS."""
        aggregate = self.get_aggregate_metrics(hours)
        if not aggregate.total_runs:
            return 0.0
        return aggregate.successful_runs / aggregate.total_runs
