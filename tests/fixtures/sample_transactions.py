"""Raw exchange payload builders and an in-memory ledger for tests."""

from typing import List, Optional

from ledger_bridge.exchange.mock_client import MockExchangeClient
from ledger_bridge.ledger.client import BaseLedgerClient, LedgerError
from ledger_bridge.records.models import CanonicalRecord
from ledger_bridge.sync.config import CircuitBreakerConfig, RetryConfig, SyncConfig
from ledger_bridge.sync.poller import LedgerSyncPoller
from ledger_bridge.sync.watermark import MemoryWatermarkStore


class FakeLedger(BaseLedgerClient):
    """In-memory ledger that remembers every submitted externalId."""

    def __init__(self, known_ids=None, fail_list=False, fail_submit=False):
        self.known_ids = set(known_ids or [])
        self.fail_list = fail_list
        self.fail_submit = fail_submit
        self.list_calls = 0
        self.submitted_batches: List[List[CanonicalRecord]] = []

    async def list_known_ids(self):
        self.list_calls += 1
        if self.fail_list:
            raise LedgerError("ledger read unavailable", status_code=503)
        return set(self.known_ids)

    async def submit_records(self, records):
        if self.fail_submit:
            raise LedgerError("ledger write unavailable", status_code=503)
        self.submitted_batches.append(list(records))
        self.known_ids.update(r.external_id for r in records if r.external_id)

    @property
    def submitted(self) -> List[CanonicalRecord]:
        return [r for batch in self.submitted_batches for r in batch]


def p2p_order(order_number="987", trade_type="BUY", create_time=1700000000000, **extra):
    order = {
        "orderNumber": order_number,
        "tradeType": trade_type,
        "asset": "USDT",
        "fiat": "EUR",
        "amount": "50.00",
        "totalPrice": "46.00",
        "createTime": create_time,
        "orderStatus": "COMPLETED",
        "advertisementRole": "TAKER",
        "counterPartNickName": "alice",
    }
    order.update(extra)
    return order


def pay_transaction(transaction_id="P1", amount="-12.50", transaction_time=1700000100000, **extra):
    tx = {
        "orderType": "C2C",
        "transactionId": transaction_id,
        "transactionTime": transaction_time,
        "amount": amount,
        "currency": "usdt",
        "payerInfo": {"name": "Payroll Ltd", "type": "MERCHANT"},
        "receiverInfo": {"name": "Bob", "email": "bob@example.com", "type": "USER"},
    }
    tx.update(extra)
    return tx


def deposit(tx_id="0xabc", amount="100", insert_time=1700000200000, **extra):
    dep = {
        "id": "1",
        "amount": amount,
        "coin": "usdt",
        "network": "TRX",
        "status": 1,
        "txId": tx_id,
        "insertTime": insert_time,
    }
    dep.update(extra)
    return dep


def fast_config(**overrides) -> SyncConfig:
    """Config with no backoff delays so failure tests stay quick."""
    values = dict(
        poll_interval_seconds=1,
        run_on_startup=True,
        retry=RetryConfig(max_attempts=2, initial_delay=0.001, jitter=False),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=100),
    )
    values.update(overrides)
    return SyncConfig(**values)


def make_poller(
    client=None,
    ledger: Optional[FakeLedger] = None,
    config: Optional[SyncConfig] = None,
    watermark_store=None,
) -> LedgerSyncPoller:
    return LedgerSyncPoller(
        client=client or MockExchangeClient(p2p_orders=[], deposits=[], pay_transactions=[], latency_ms=0),
        ledger=ledger or FakeLedger(),
        config=config or fast_config(),
        watermark_store=watermark_store or MemoryWatermarkStore(),
    )
