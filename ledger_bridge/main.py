from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ledger_bridge.core.config import get_settings
from ledger_bridge.core.logging import configure_logging
from ledger_bridge.sync.poller import LedgerSyncPoller
from ledger_bridge.sync.router import router as sync_router
from ledger_bridge.sync.router import set_poller

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.ENV, "DEBUG" if settings.DEBUG else settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sync poller with the app and stop it on shutdown."""
    logger.info("Starting ledger bridge (env=%s)", settings.ENV)

    poller = LedgerSyncPoller(settings=settings)
    set_poller(poller)
    await poller.start()
    logger.info(
        "Sync poller started, interval %ss", poller.config.poll_interval_seconds
    )

    yield

    logger.info("Shutting down ledger bridge...")
    await poller.close()
    set_poller(None)
    logger.info("Sync poller stopped")


app = FastAPI(title="Ledger Bridge", version="0.1.0", lifespan=lifespan)
app.include_router(sync_router)


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok", "env": settings.ENV}
