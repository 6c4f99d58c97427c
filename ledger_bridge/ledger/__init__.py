"""Downstream ledger API client."""

from ledger_bridge.ledger.client import BaseLedgerClient, LedgerClient, LedgerError

__all__ = ["BaseLedgerClient", "LedgerClient", "LedgerError"]
