"""
Ledger bridge CLI commands.

Provides a command-line interface for running one sync cycle, running
the poller continuously, previewing pending records and checking
exchange credentials.
"""

import asyncio
import json
import sys

import structlog

from ledger_bridge.core.config import get_settings
from ledger_bridge.core.logging import configure_logging
from ledger_bridge.sync.poller import LedgerSyncPoller

logger = structlog.get_logger()


def print_cycle(result: dict):
    """Pretty print a cycle summary."""
    print("\n=== Sync Cycle ===\n")
    print(f"Run ID: {result['run_id']}")
    print(f"Status: {result['status']}")
    if result.get("error"):
        print(f"Error: {result['error']}")
        return
    for kind, count in result["fetched"].items():
        print(f"Fetched {kind}: {count}")
    for kind, error in result["fetch_errors"].items():
        print(f"Fetch error {kind}: {error}")
    print(f"Skipped: {result['records_skipped']}")
    print(f"New: {result['records_new']}")
    print(f"Duplicates: {result['records_duplicate']}")
    print(f"Submitted: {result['records_submitted']}")
    if result["submit_error"]:
        print(f"SUBMISSION FAILED: {result['submit_error']}")
    if result["orders_awaiting_release"]:
        print(f"Awaiting release: {', '.join(result['orders_awaiting_release'])}")
    print(f"Watermark: {result['watermark'] or 'none'}")
    print(f"Duration: {result.get('duration_seconds', 0):.2f}s")
    print()


async def poll_command() -> int:
    """Run a single sync cycle."""
    poller = LedgerSyncPoller()
    try:
        result = await poller.poll_once()
    finally:
        await poller.close()
    print_cycle(result)
    return 1 if result["status"] == "failed" else 0


async def preview_command() -> int:
    """Show records a cycle would submit, without submitting them."""
    poller = LedgerSyncPoller()
    try:
        preview = await poller.preview()
    finally:
        await poller.close()
    print(json.dumps(preview, indent=2))
    return 0


async def check_command() -> int:
    """Validate exchange credentials."""
    poller = LedgerSyncPoller()
    try:
        valid = await poller.client.validate_credentials()
    finally:
        await poller.close()
    print(f"Exchange credentials ({poller.client.get_source_name()}): {'valid' if valid else 'INVALID'}")
    return 0 if valid else 1


async def run_command() -> int:
    """Run the poller continuously."""
    poller = LedgerSyncPoller()
    print("Starting ledger sync poller...")
    print(f"Poll interval: {poller.config.poll_interval_seconds} seconds")
    print("Press Ctrl+C to stop\n")

    try:
        await poller.start()
        while True:
            await asyncio.sleep(1)
    finally:
        print("\nShutting down...")
        await poller.close()
        print("Poller stopped.")


COMMANDS = {
    "poll": poll_command,
    "preview": preview_command,
    "check": check_command,
    "run": run_command,
}


def main() -> int:
    """Main CLI entry point."""
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        if len(sys.argv) >= 2:
            print(f"Unknown command: {sys.argv[1]}")
        print("Usage: python -m ledger_bridge <command>")
        print("\nCommands:")
        print("  poll      Run a single sync cycle")
        print("  preview   Fetch and deduplicate, print new records, submit nothing")
        print("  check     Validate exchange API credentials")
        print("  run       Run the poller continuously")
        return 1

    settings = get_settings()
    configure_logging(settings.ENV, "DEBUG" if settings.DEBUG else settings.LOG_LEVEL)
    command = sys.argv[1]

    try:
        return asyncio.run(COMMANDS[command]())
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        print(f"Error: {str(e)}")
        logger.exception("cli.failed", command=command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
