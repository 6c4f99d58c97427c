"""Canonical ledger records and the normalizers that build them."""

from ledger_bridge.records.models import CanonicalRecord, RecordType, TransactionKind
from ledger_bridge.records.normalizer import (
    NormalizationError,
    normalize,
    normalize_deposit,
    normalize_p2p_order,
    normalize_pay_transaction,
    to_minor_units,
)

__all__ = [
    # Models
    "CanonicalRecord",
    "RecordType",
    "TransactionKind",
    # Functions
    "NormalizationError",
    "normalize",
    "normalize_deposit",
    "normalize_p2p_order",
    "normalize_pay_transaction",
    "to_minor_units",
]
