"""
Mock exchange client for testing and development.

Serves either fixed raw transactions or generated ones shaped like the
Binance P2P, deposit and Pay history responses, so the sync pipeline can
run without real API credentials.
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ledger_bridge.exchange.base import APIConnectionError, BaseExchangeClient

ASSETS = ["USDT", "USDC", "BTC"]
FIATS = ["EUR", "USD", "ARS"]
COUNTERPARTIES = [
    {"name": "Ana Lopez", "email": "ana@example.com"},
    {"name": None, "email": "payroll@example.com"},
    {"name": None, "email": None},
]


def _time_field(raw: Dict[str, Any]) -> int:
    for key in ("createTime", "transactionTime", "insertTime"):
        if key in raw:
            return int(raw[key])
    return 0


class MockExchangeClient(BaseExchangeClient):
    """
    Mock exchange client.

    When fixed transactions are supplied they are returned as-is (filtered by
    the ``since`` bound), otherwise each call generates ``generate_count``
    fresh transactions per kind.
    """

    def __init__(
        self,
        p2p_orders: Optional[List[Dict[str, Any]]] = None,
        deposits: Optional[List[Dict[str, Any]]] = None,
        pay_transactions: Optional[List[Dict[str, Any]]] = None,
        generate_count: int = 3,
        failure_rate: float = 0.0,
        latency_ms: int = 100,
    ):
        """
        Initialize mock client.

        Args:
            p2p_orders: Fixed raw P2P orders to serve
            deposits: Fixed raw deposits to serve
            pay_transactions: Fixed raw pay transactions to serve
            generate_count: Transactions generated per kind when none are fixed
            failure_rate: Probability of simulated failure (0.0 to 1.0)
            latency_ms: Simulated network latency in milliseconds
        """
        super().__init__()
        self._fixed = {
            "p2p": p2p_orders,
            "deposit": deposits,
            "pay": pay_transactions,
        }
        self.generate_count = generate_count
        self.failure_rate = failure_rate
        self.latency_ms = latency_ms
        self._counter = 0

    def get_source_name(self) -> str:
        """Return source identifier."""
        return "mock"

    async def validate_credentials(self) -> bool:
        """Mock credential validation always succeeds."""
        await self._simulate_latency()
        return True

    async def list_p2p_orders(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        return await self._serve("p2p", since, self._generate_p2p_order)

    async def list_deposits(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        return await self._serve("deposit", since, self._generate_deposit)

    async def list_pay_transactions(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        return await self._serve("pay", since, self._generate_pay_transaction)

    async def _serve(self, kind, since, generator) -> List[Dict[str, Any]]:
        await self._simulate_latency()

        if random.random() < self.failure_rate:
            raise APIConnectionError(f"Simulated {kind} API connection failure")

        fixed = self._fixed[kind]
        if fixed is not None:
            items = list(fixed)
        else:
            now = datetime.now(timezone.utc)
            start = since or now - timedelta(days=1)
            span = max((now - start).total_seconds(), 1.0)
            items = [
                generator(start + timedelta(seconds=random.uniform(0, span)))
                for _ in range(self.generate_count)
            ]

        if since is not None:
            cutoff = int(since.timestamp() * 1000)
            items = [item for item in items if _time_field(item) >= cutoff]
        return items

    def _next_id(self) -> int:
        self._counter += 1
        return self._counter

    def _generate_p2p_order(self, when: datetime) -> Dict[str, Any]:
        amount = round(random.uniform(10, 500), 2)
        price = round(random.uniform(0.9, 1.1), 4)
        trade_type = random.choice(["BUY", "SELL"])
        return {
            "orderNumber": f"2{int(when.timestamp())}{self._next_id():04d}",
            "advNo": f"1{self._counter:017d}",
            "tradeType": trade_type,
            "asset": random.choice(ASSETS),
            "fiat": random.choice(FIATS),
            "amount": f"{amount:.2f}",
            "totalPrice": f"{amount * price:.2f}",
            "unitPrice": f"{price}",
            "orderStatus": random.choice(["COMPLETED", "COMPLETED", "BUYER_PAYED"]),
            "createTime": int(when.timestamp() * 1000),
            "commission": "0",
            "counterPartNickName": "mock-user",
            "advertisementRole": random.choice(["MAKER", "TAKER"]),
        }

    def _generate_deposit(self, when: datetime) -> Dict[str, Any]:
        return {
            "id": str(self._next_id()),
            "amount": f"{random.uniform(1, 1000):.8f}",
            "coin": random.choice(ASSETS),
            "network": "TRX",
            "status": 1,
            "txId": f"{random.getrandbits(128):032x}",
            "insertTime": int(when.timestamp() * 1000),
        }

    def _generate_pay_transaction(self, when: datetime) -> Dict[str, Any]:
        amount = random.uniform(1, 300)
        outgoing = random.random() < 0.5
        party = dict(random.choice(COUNTERPARTIES), type="USER")
        tx = {
            "orderType": "C2C",
            "transactionId": f"M_P_{self._next_id():010d}",
            "transactionTime": int(when.timestamp() * 1000),
            "amount": f"{'-' if outgoing else ''}{amount:.2f}",
            "currency": random.choice(ASSETS),
        }
        if outgoing:
            tx["receiverInfo"] = party
        else:
            tx["payerInfo"] = party
        return tx

    async def _simulate_latency(self):
        """Simulate network latency."""
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000.0)
