"""
Endpoint tests for the liveness probe (anon_relay/api/routes/health.py).

Uses TestClient; the probe app is built around a real ledger store and a
stubbed gateway state.
"""

import pytest
from fastapi.testclient import TestClient

from anon_relay import __version__
from anon_relay.api.server import ProbeServer, build_server, create_app
from anon_relay.api.status import RelayStatus
from anon_relay.ledger import LedgerStore


def make_client(store: LedgerStore, connected: bool = True) -> TestClient:
    status = RelayStatus(ledger=store, gateway_connected=lambda: connected)
    return TestClient(create_app(status))


@pytest.mark.api
def test_root_endpoint(store):
    """Root answers plain text."""
    response = make_client(store).get("/")

    assert response.status_code == 200
    assert response.text == "Bot is running"
    assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.api
def test_health_endpoint_healthy(store):
    store.allocate()
    response = make_client(store).get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["gateway_connected"] is True
    assert data["ledger_file_accessible"] is True
    assert data["last_message_id"] == 1
    assert data["version"] == __version__
    assert data["uptime_seconds"] >= 0
    assert data["max_rss_kb"] > 0
    assert "error" not in data


@pytest.mark.api
def test_health_reports_disconnected_gateway_without_failing(store):
    response = make_client(store, connected=False).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "unhealthy"


@pytest.mark.api
def test_health_fails_when_ledger_file_missing(store, ledger_path):
    ledger_path.unlink()

    response = make_client(store).get("/health")

    assert response.status_code == 500
    data = response.json()
    assert data["ledger_file_accessible"] is False
    assert data["error"] == "ledger file not accessible: ledger.json"


@pytest.mark.api
def test_docs_are_disabled(store):
    client = make_client(store)

    assert client.get("/docs").status_code == 404
    assert client.get("/openapi.json").status_code == 404


def test_build_server_does_not_capture_signals(store):
    server = build_server(create_app(RelayStatus(ledger=store)), "127.0.0.1", 0, "INFO")

    assert isinstance(server, ProbeServer)
    assert server.config.log_level == "info"
    with server.capture_signals():
        pass
