from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest

from ledger_bridge.sync.router import router, set_poller
from tests.fixtures.sample_transactions import FakeLedger, make_poller


@pytest.fixture
def api():
    app = FastAPI()
    app.include_router(router)
    yield TestClient(app)
    set_poller(None)


def test_routes_unavailable_without_poller(api):
    set_poller(None)
    assert api.get("/sync/status").status_code == 503
    assert api.post("/sync/poll").status_code == 503


def test_manual_poll_runs_one_cycle(api, sample_client):
    ledger = FakeLedger()
    set_poller(make_poller(client=sample_client, ledger=ledger))

    resp = api.post("/sync/poll")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert body["details"]["records_submitted"] == 3
    assert len(ledger.submitted_batches) == 1

    # Same records again: nothing new to send.
    body = api.post("/sync/poll").json()
    assert body["details"]["records_submitted"] == 0
    assert body["details"]["records_duplicate"] == 3


def test_manual_poll_reports_submission_failure(api, sample_client):
    set_poller(make_poller(client=sample_client, ledger=FakeLedger(fail_submit=True)))

    body = api.post("/sync/poll").json()
    assert body["status"] == "failed"
    assert "ledger write unavailable" in body["message"]


def test_status_and_metrics(api, sample_client):
    set_poller(make_poller(client=sample_client, ledger=FakeLedger()))
    api.post("/sync/poll")

    status = api.get("/sync/status").json()
    assert status["running"] is False
    assert status["watermark"].startswith("2023-11-14T22:16:40")
    assert status["last_run"]["status"] == "success"

    metrics = api.get("/sync/metrics", params={"hours": 24}).json()
    assert metrics["aggregate"]["total_runs"] == 1
    assert len(metrics["recent_runs"]) == 1


def test_health():
    from ledger_bridge.main import app

    resp = TestClient(app).get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
