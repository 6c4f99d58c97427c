"""Tests for the command-line entry point."""

from ledger_bridge import cli
from tests.fixtures.sample_transactions import FakeLedger, make_poller


def run_cli(monkeypatch, *args):
    monkeypatch.setattr("sys.argv", ["ledger-bridge", *args])
    return cli.main()


def test_usage_on_unknown_command(monkeypatch, capsys):
    assert run_cli(monkeypatch, "frobnicate") == 1
    out = capsys.readouterr().out
    assert "Unknown command: frobnicate" in out
    assert "poll" in out


def test_poll_prints_cycle(monkeypatch, capsys, sample_client):
    ledger = FakeLedger()
    monkeypatch.setattr(cli, "LedgerSyncPoller", lambda: make_poller(client=sample_client, ledger=ledger))

    assert run_cli(monkeypatch, "poll") == 0
    out = capsys.readouterr().out
    assert "Status: success" in out
    assert "Submitted: 3" in out
    assert len(ledger.submitted) == 3


def test_poll_exit_code_on_submission_failure(monkeypatch, capsys, sample_client):
    monkeypatch.setattr(
        cli,
        "LedgerSyncPoller",
        lambda: make_poller(client=sample_client, ledger=FakeLedger(fail_submit=True)),
    )

    assert run_cli(monkeypatch, "poll") == 1
    assert "SUBMISSION FAILED" in capsys.readouterr().out


def test_preview_submits_nothing(monkeypatch, capsys, sample_client):
    ledger = FakeLedger(known_ids={"BN-987"})
    monkeypatch.setattr(cli, "LedgerSyncPoller", lambda: make_poller(client=sample_client, ledger=ledger))

    assert run_cli(monkeypatch, "preview") == 0
    out = capsys.readouterr().out
    assert '"externalId": "PAY-P1"' in out
    assert '"externalId": "BN-0xabc"' in out
    assert '"records_duplicate": 1' in out
    assert ledger.submitted_batches == []


def test_check_reports_credentials(monkeypatch, capsys, sample_client):
    monkeypatch.setattr(cli, "LedgerSyncPoller", lambda: make_poller(client=sample_client))

    assert run_cli(monkeypatch, "check") == 0
    assert "Exchange credentials (mock): valid" in capsys.readouterr().out
