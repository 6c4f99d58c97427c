"""
Exchange-to-ledger synchronization.

Fetches exchange transactions, normalizes them into canonical records,
drops the ones the ledger already has and submits the rest.
"""

from ledger_bridge.sync.dedup import DeduplicationFilter, filter_new_records
from ledger_bridge.sync.fetchers import Fetcher, FetchResult, build_fetchers
from ledger_bridge.sync.metrics import CycleStatus, SyncMetrics
from ledger_bridge.sync.poller import CycleResult, LedgerSyncPoller
from ledger_bridge.sync.sink import SubmissionSink

__all__ = [
    "CycleResult",
    "CycleStatus",
    "DeduplicationFilter",
    "FetchResult",
    "Fetcher",
    "LedgerSyncPoller",
    "SubmissionSink",
    "SyncMetrics",
    "build_fetchers",
    "filter_new_records",
]
