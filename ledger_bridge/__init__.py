"""Exchange-to-ledger reconciliation bridge."""

__version__ = "0.1.0"
