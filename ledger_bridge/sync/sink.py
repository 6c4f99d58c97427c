"""Bulk submission of new records to the ledger."""

from dataclasses import dataclass
from typing import List, Optional

import structlog

from ledger_bridge.ledger.client import BaseLedgerClient
from ledger_bridge.records.models import CanonicalRecord

logger = structlog.get_logger()


@dataclass
class SubmitResult:
    submitted: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class SubmissionSink:
    """Sends one deduplicated batch per cycle; never retries within the cycle."""

    def __init__(self, ledger: BaseLedgerClient):
        self.ledger = ledger

    async def submit(self, records: List[CanonicalRecord]) -> SubmitResult:
        if not records:
            logger.debug("submit.skipped_empty_batch")
            return SubmitResult()

        try:
            await self.ledger.submit_records(records)
        except Exception as e:
            logger.critical(
                "submit.failed.records_dropped",
                count=len(records),
                external_ids=[r.external_id for r in records],
                error=str(e),
                error_type=type(e).__name__,
            )
            return SubmitResult(error=f"{type(e).__name__}: {e}")

        logger.info("submit.completed", count=len(records))
        return SubmitResult(submitted=len(records))
