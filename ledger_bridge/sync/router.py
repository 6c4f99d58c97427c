"""
Sync poller API routes.

Provides endpoints to trigger a cycle, view status and access metrics.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])

_poller = None


def set_poller(poller):
    """Set the poller instance served by these routes."""
    global _poller
    _poller = poller


def _require_poller():
    if _poller is None:
        logger.error("[SYNC] Request received but poller not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync poller not initialized",
        )
    return _poller


class SyncCycleResponse(BaseModel):
    """Outcome of a manually triggered cycle; ``details`` is the full cycle summary."""

    run_id: str
    status: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class SyncStatusResponse(BaseModel):
    """Poller state, current watermark and per-kind breaker state."""

    running: bool
    enabled: bool
    last_poll_time: Optional[str]
    watermark: Optional[str]
    fetchers: List[Dict[str, Any]]
    current_run: Optional[Dict[str, Any]]
    last_run: Optional[Dict[str, Any]]
    metrics_24h: Dict[str, Any]
    success_rate_24h: float
    config: Dict[str, Any]


class SyncMetricsResponse(BaseModel):
    """Aggregates plus the ten most recent cycles."""

    enabled: bool
    aggregate: Dict[str, Any]
    success_rate: float
    recent_runs: List[Dict[str, Any]]


@router.post("/poll", response_model=SyncCycleResponse)
async def trigger_poll():
    """
    Run one sync cycle now, regardless of the configured interval.

    Waits for an in-flight cycle to finish first.
    """
    poller = _require_poller()
    result = await poller.poll_once()

    if result["status"] == "failed":
        message = "Sync cycle failed: " + (
            result.get("submit_error") or result.get("error") or "unknown error"
        )
    else:
        message = f"Sync cycle completed ({result['status']})"

    return SyncCycleResponse(
        run_id=result["run_id"],
        status=result["status"],
        message=message,
        details=result,
    )


@router.get("/status", response_model=SyncStatusResponse)
async def get_status():
    """Current poller state, watermark and last cycle."""
    return _require_poller().get_status()


@router.get("/metrics", response_model=SyncMetricsResponse)
async def get_metrics(hours: Optional[int] = None):
    """
    Aggregate metrics for sync cycles.

    Args:
        hours: Limit to last N hours (omit for all history)
    """
    return _require_poller().get_metrics(hours=hours)
