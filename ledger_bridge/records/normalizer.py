"""Map raw exchange transactions onto the canonical ledger record."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ValidationError

from ledger_bridge.exchange.base import (
    PayParty,
    RawDeposit,
    RawP2POrder,
    RawPayTransaction,
)
from ledger_bridge.records.models import CanonicalRecord, RecordType, TransactionKind

P2P_ID_PREFIX = "BN"
PAY_ID_PREFIX = "PAY"
DEPOSIT_ID_PREFIX = "BN"

UNKNOWN_COUNTERPARTY = "Unknown"


class NormalizationError(ValueError):
    """Raised when a single upstream transaction cannot be normalized."""

    def __init__(self, kind: TransactionKind, message: str, upstream_id: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.upstream_id = upstream_id


# ============================================================================
# Amounts
# ============================================================================

def parse_decimal(value: Any) -> Decimal:
    """Parse an upstream amount to Decimal, going through str to avoid float drift."""
    if value is None or isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"not a number: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return amount


def to_minor_units(value: Any) -> int:
    """
    Scale a decimal amount by 100 and round half away from zero.

    - "12.345" -> 1235
    - "50.00"  -> 5000
    - "0.005"  -> 1
    """
    scaled = parse_decimal(value) * 100
    try:
        return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as e:
        raise ValueError(f"amount out of range: {value!r}") from e


# ============================================================================
# Normalizers
# ============================================================================

def _parse(model: type[BaseModel], raw: Any, kind: TransactionKind) -> Any:
    if isinstance(raw, model):
        return raw
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        upstream_id = _guess_id(raw)
        raise NormalizationError(
            kind, f"malformed {kind.value} transaction: {e.error_count()} error(s)", upstream_id
        ) from e


def _guess_id(raw: Any) -> str | None:
    if isinstance(raw, Mapping):
        for key in ("orderNumber", "transactionId", "txId"):
            if raw.get(key) is not None:
                return str(raw[key])
    return None


def _build(kind: TransactionKind, upstream_id: str, **fields: Any) -> CanonicalRecord:
    try:
        return CanonicalRecord(tag=None, **fields)
    except ValidationError as e:
        raise NormalizationError(
            kind, f"invalid {kind.value} record: {e.errors()[0]['msg']}", upstream_id
        ) from e


def normalize_p2p_order(raw: Mapping[str, Any] | RawP2POrder) -> CanonicalRecord:
    """
    Normalize a P2P trade.

    BUY orders bring the asset in; anything else sends it out. The fiat
    leg is kept as the secondary amount.
    """
    order = _parse(RawP2POrder, raw, TransactionKind.P2P)
    trade_type = order.trade_type.strip().upper()
    asset = order.asset.strip().upper()
    fiat = order.fiat.strip().upper()

    try:
        amount = to_minor_units(order.amount)
        secondary = to_minor_units(order.total_price) if order.total_price is not None else None
    except ValueError as e:
        raise NormalizationError(TransactionKind.P2P, str(e), order.order_number) from e

    return _build(
        TransactionKind.P2P,
        order.order_number,
        amount=amount,
        type=RecordType.IN if trade_type == "BUY" else RecordType.OUT,
        currency=asset,
        description=f"P2P {trade_type} {asset} for {fiat}",
        externalId=f"{P2P_ID_PREFIX}-{order.order_number}",
        date=order.create_time,
        secondaryAmount=secondary,
        secondaryCurrency=fiat if secondary is not None else None,
    )


def resolve_counterparty(party: PayParty | None) -> str:
    """Pick a display name for a pay counterparty: name, then email, then Unknown."""
    if party is None:
        return UNKNOWN_COUNTERPARTY
    for candidate in (party.name, party.email):
        if candidate and candidate.strip():
            return candidate.strip()
    return UNKNOWN_COUNTERPARTY


def normalize_pay_transaction(raw: Mapping[str, Any] | RawPayTransaction) -> CanonicalRecord:
    """
    Normalize a pay transfer.

    The sign of the upstream amount string decides the direction; the
    record carries the absolute value. Outgoing transfers are described by
    their receiver, incoming ones by their payer. A zero amount is rejected.
    """
    tx = _parse(RawPayTransaction, raw, TransactionKind.PAY)
    amount_str = tx.amount.strip()
    outgoing = amount_str.startswith("-")

    try:
        amount = abs(to_minor_units(amount_str))
    except ValueError as e:
        raise NormalizationError(TransactionKind.PAY, str(e), tx.transaction_id) from e
    if parse_decimal(amount_str) == 0:
        raise NormalizationError(
            TransactionKind.PAY, "pay transaction amount is zero", tx.transaction_id
        )

    if outgoing:
        description = f"Binance Pay to {resolve_counterparty(tx.receiver_info)}"
    else:
        description = f"Binance Pay from {resolve_counterparty(tx.payer_info)}"

    return _build(
        TransactionKind.PAY,
        tx.transaction_id,
        amount=amount,
        type=RecordType.OUT if outgoing else RecordType.IN,
        currency=tx.currency,
        description=description,
        externalId=f"{PAY_ID_PREFIX}-{tx.transaction_id}",
        date=tx.transaction_time,
    )


def normalize_deposit(raw: Mapping[str, Any] | RawDeposit) -> CanonicalRecord:
    """Normalize a deposit. Deposits are always incoming."""
    deposit = _parse(RawDeposit, raw, TransactionKind.DEPOSIT)
    asset = deposit.coin.strip().upper()

    try:
        amount = to_minor_units(deposit.amount)
    except ValueError as e:
        raise NormalizationError(TransactionKind.DEPOSIT, str(e), deposit.tx_id) from e

    return _build(
        TransactionKind.DEPOSIT,
        deposit.tx_id,
        amount=amount,
        type=RecordType.IN,
        currency=asset,
        description=f"Deposit {asset} to Binance",
        externalId=f"{DEPOSIT_ID_PREFIX}-{deposit.tx_id}",
        date=deposit.insert_time,
    )


NORMALIZERS: dict[TransactionKind, Callable[[Any], CanonicalRecord]] = {
    TransactionKind.P2P: normalize_p2p_order,
    TransactionKind.PAY: normalize_pay_transaction,
    TransactionKind.DEPOSIT: normalize_deposit,
}


def normalize(kind: TransactionKind | str, raw: Any) -> CanonicalRecord:
    """Normalize a raw transaction of the given kind."""
    return NORMALIZERS[TransactionKind(kind)](raw)
