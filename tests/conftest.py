import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import ledger_bridge` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tests.fixtures.sample_transactions import (  # noqa: E402
    FakeLedger,
    deposit,
    p2p_order,
    pay_transaction,
)
from ledger_bridge.exchange.mock_client import MockExchangeClient  # noqa: E402


@pytest.fixture
def fake_ledger():
    return FakeLedger()


@pytest.fixture
def sample_client():
    """Mock exchange serving one transaction of each kind."""
    return MockExchangeClient(
        p2p_orders=[p2p_order()],
        pay_transactions=[pay_transaction()],
        deposits=[deposit()],
        latency_ms=0,
    )
