"""Drop records the ledger already holds."""

from dataclasses import dataclass, field
from typing import AbstractSet, Iterable, List

import structlog

from ledger_bridge.ledger.client import BaseLedgerClient
from ledger_bridge.records.models import CanonicalRecord

logger = structlog.get_logger()


@dataclass
class DedupResult:
    new: List[CanonicalRecord] = field(default_factory=list)
    duplicates: List[CanonicalRecord] = field(default_factory=list)
    known_ids_available: bool = True


def filter_new_records(
    records: Iterable[CanonicalRecord], known_ids: AbstractSet[str]
) -> DedupResult:
    """
    Split records into new ones and duplicates.

    A record is a duplicate when its external id is already known or
    appeared earlier in the same batch. Records without an external id are
    always kept.
    """
    result = DedupResult()
    seen: set[str] = set()
    for record in records:
        key = record.external_id
        if key is None:
            result.new.append(record)
        elif key in known_ids or key in seen:
            result.duplicates.append(record)
        else:
            seen.add(key)
            result.new.append(record)
    return result


class DeduplicationFilter:
    """Filters a candidate batch against the ids the ledger reports."""

    def __init__(self, ledger: BaseLedgerClient):
        self.ledger = ledger

    async def filter(self, records: List[CanonicalRecord]) -> DedupResult:
        if not records:
            return DedupResult()

        known_ids_available = True
        try:
            known_ids = await self.ledger.list_known_ids()
        except Exception as e:
            # Degrade to "nothing known": risk a duplicate rather than stall the sync.
            logger.error(
                "dedup.known_ids_unavailable",
                error=str(e),
                error_type=type(e).__name__,
                candidates=len(records),
            )
            known_ids = set()
            known_ids_available = False

        result = filter_new_records(records, known_ids)
        result.known_ids_available = known_ids_available
        logger.info(
            "dedup.completed",
            candidates=len(records),
            new=len(result.new),
            duplicates=len(result.duplicates),
            known_ids=len(known_ids),
        )
        return result
