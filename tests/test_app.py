"""
Tests for the dashboard WebSocket endpoint.
"""

from fastapi.testclient import TestClient

from dashboard_app.main import create_app
from monitor_library import AccountMonitor, MonitorConfig


def _monitor(path):
    return AccountMonitor(
        MonitorConfig(
            accounts_file=path,
            watch_registry=False,
            quota_poll_enabled=False,
            heartbeat_interval=3600,
            status_clock_interval=3600,
        )
    )


class TestWebSocket:
    def test_initial_message_is_snapshot(self, registry_path):
        monitor = _monitor(registry_path)
        with TestClient(create_app(monitor)) as client:
            with client.websocket_connect("/ws") as websocket:
                message = websocket.receive_json()

        assert message["type"] == "initial"
        assert message["seq"] >= 1
        emails = [a["email"] for a in message["data"]["accounts"]]
        assert emails == ["alice@example.com", "bob@example.com"]
        assert message["data"]["stats"]["total_accounts"] == 2
        assert all("refresh_token" not in a for a in message["data"]["accounts"])

    def test_ping_pong(self, registry_path):
        monitor = _monitor(registry_path)
        with TestClient(create_app(monitor)) as client:
            with client.websocket_connect("/ws") as websocket:
                websocket.receive_json()
                websocket.send_json({"type": "ping"})
                assert websocket.receive_json()["type"] == "pong"

    def test_lifespan_starts_and_stops_monitor(self, registry_path):
        monitor = _monitor(registry_path)
        with TestClient(create_app(monitor)):
            assert monitor.running
            assert len(monitor.get_accounts()) == 2
        assert not monitor.running
