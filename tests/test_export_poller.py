"""Tests for export status polling."""
import httpx
import pytest

from record_transfer.errors import ExportFailedError, PollError
from record_transfer.services.export_poller import ExportStatusPoller, HttpExportStatusClient


def _scripted(*snapshots):
    calls = []

    def fetch(export_id):
        calls.append(export_id)
        return snapshots[min(len(calls), len(snapshots)) - 1]

    return fetch, calls


def test_poll_stops_on_completion():
    """Test polling returns the completed snapshot and stops fetching."""
    fetch, calls = _scripted(
        {"status": "processing", "progress": 10},
        {"status": "processing", "progress": 60},
        {"status": "completed", "progress": 100, "download_url": "https://x/download"},
    )
    sleeps = []
    updates = []
    poller = ExportStatusPoller(fetch, interval=2.0, sleep=sleeps.append, on_update=updates.append)

    snapshot = poller.poll("exp-1")

    assert snapshot["download_url"] == "https://x/download"
    assert poller.polls == 3
    assert calls == ["exp-1"] * 3
    assert sleeps == [2.0, 2.0]
    assert [u["progress"] for u in updates] == [10, 60, 100]


def test_failed_export_raises():
    fetch, _ = _scripted({"status": "queued"}, {"status": "failed", "error": "time limit exceeded"})
    poller = ExportStatusPoller(fetch, sleep=lambda s: None)

    with pytest.raises(ExportFailedError) as excinfo:
        poller.poll("exp-1")
    assert excinfo.value.error == "time limit exceeded"


def test_fetch_error_stops_polling():
    """Test a failing status request ends the loop instead of retrying forever."""
    calls = []

    def fetch(export_id):
        calls.append(export_id)
        raise ConnectionError("network down")

    with pytest.raises(PollError, match="network down"):
        ExportStatusPoller(fetch, sleep=lambda s: None).poll("exp-1")
    assert len(calls) == 1


def test_poll_budget():
    fetch, calls = _scripted({"status": "processing"})
    with pytest.raises(PollError, match="after 5 polls"):
        ExportStatusPoller(fetch, max_polls=5, sleep=lambda s: None).poll("exp-1")
    assert len(calls) == 5


def test_unknown_status():
    fetch, _ = _scripted({"status": "exploded"})
    with pytest.raises(PollError, match="unknown status"):
        ExportStatusPoller(fetch, sleep=lambda s: None).poll("exp-1")


def test_stop_abandons_polling():
    fetch, calls = _scripted({"status": "processing"})
    poller = ExportStatusPoller(fetch, sleep=lambda s: None)
    poller._on_update = lambda snapshot: poller.stop()

    with pytest.raises(PollError, match="stopped"):
        poller.poll("exp-1")
    assert len(calls) == 1


def test_http_client_sends_identity_headers():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "exp-1", "status": "completed"})

    client = httpx.Client(base_url="http://testserver", transport=httpx.MockTransport(handler))
    fetch = HttpExportStatusClient("http://testserver", "team-1", "user-1", client=client)

    assert fetch("exp-1")["status"] == "completed"
    assert seen[0].url.path == "/api/exports/exp-1"
    assert seen[0].headers["X-Team-Id"] == "team-1"
    fetch.close()


def test_http_error_becomes_poll_error():
    client = httpx.Client(
        base_url="http://testserver",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    fetch = HttpExportStatusClient("http://testserver", "team-1", "user-1", client=client)

    with pytest.raises(PollError):
        ExportStatusPoller(fetch, sleep=lambda s: None).poll("exp-1")
