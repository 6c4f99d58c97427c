"""Watermark storage and the rule for advancing it."""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Iterable

import structlog

from ledger_bridge.records.models import CanonicalRecord, coerce_timestamp

logger = structlog.get_logger()


def next_watermark(
    current: datetime | None, records: Iterable[CanonicalRecord]
) -> datetime | None:
    """Return the watermark after a cycle that fetched ``records``.

    The watermark moves to the latest record date and never moves back.
    With no records it is left as is.
    """
    latest = max((record.date for record in records), default=None)
    if latest is None:
        return current
    if current is None:
        return latest
    return max(current, latest)


class WatermarkStore(ABC):
    """Checkpoint for the watermark between process runs."""

    @abstractmethod
    def load(self) -> datetime | None:
        pass

    @abstractmethod
    def save(self, watermark: datetime | None) -> None:
        pass


class MemoryWatermarkStore(WatermarkStore):
    """Process-lifetime store; the watermark is lost on restart."""

    def __init__(self, initial: datetime | None = None):
        self._value = initial

    def load(self) -> datetime | None:
        return self._value

    def save(self, watermark: datetime | None) -> None:
        self._value = watermark


class FileWatermarkStore(WatermarkStore):
    """JSON file checkpoint, written atomically via a temp file and rename."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def load(self) -> datetime | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            value = data.get("watermark")
            return coerce_timestamp(value) if value else None
        except (OSError, ValueError, AttributeError) as e:
            logger.warning("watermark.load_failed", path=str(self.path), error=str(e))
            return None

    def save(self, watermark: datetime | None) -> None:
        payload = {"watermark": watermark.isoformat() if watermark else None}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".watermark-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh)
            os.replace(tmp_path, self.path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise
