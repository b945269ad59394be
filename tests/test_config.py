"""
Tests for environment-driven configuration.
"""

from pathlib import Path

import pytest

from monitor_library.config import MonitorConfig
from monitor_library.core.constants import (
    DEFAULT_ACCOUNTS_FILE,
    DEFAULT_DASHBOARD_PORT,
    QUOTA_ENDPOINTS,
)
from monitor_library.core.errors import mask_credential

ENV_VARS = [
    "ACCOUNTS_FILE_PATH",
    "REGISTRY_DEBOUNCE_MS",
    "REGISTRY_WATCH_ENABLED",
    "STATUS_CLOCK_INTERVAL",
    "QUOTA_POLL_ENABLED",
    "QUOTA_POLL_INTERVAL",
    "QUOTA_ACCOUNT_DELAY_MS",
    "QUOTA_REQUEST_TIMEOUT",
    "QUOTA_ENDPOINTS",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "HEARTBEAT_INTERVAL",
    "SUBSCRIBER_QUEUE_SIZE",
    "DASHBOARD_HOST",
    "DASHBOARD_PORT",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestMonitorConfig:
    def test_defaults(self, clean_env):
        config = MonitorConfig.from_env()
        assert config.accounts_file == DEFAULT_ACCOUNTS_FILE
        assert config.debounce_seconds == 0.1
        assert config.quota_poll_interval == 120
        assert config.quota_account_delay == 0.5
        assert config.quota_endpoints == QUOTA_ENDPOINTS
        assert config.port == DEFAULT_DASHBOARD_PORT == 3456
        assert config.subscriber_queue_size == 256
        assert config.watch_registry and config.quota_poll_enabled

    def test_overrides(self, clean_env, tmp_path):
        clean_env.setenv("ACCOUNTS_FILE_PATH", str(tmp_path / "a.json"))
        clean_env.setenv("REGISTRY_DEBOUNCE_MS", "250")
        clean_env.setenv("QUOTA_POLL_ENABLED", "false")
        clean_env.setenv("QUOTA_ACCOUNT_DELAY_MS", "0")
        clean_env.setenv("QUOTA_ENDPOINTS", "https://one.example/, https://two.example")
        clean_env.setenv("GOOGLE_CLIENT_SECRET", "shh")
        clean_env.setenv("DASHBOARD_PORT", "9000")

        config = MonitorConfig.from_env()
        assert config.accounts_file == Path(tmp_path / "a.json")
        assert config.debounce_seconds == 0.25
        assert not config.quota_poll_enabled
        assert config.quota_account_delay == 0
        assert config.quota_endpoints == ("https://one.example", "https://two.example")
        assert config.port == 9000
        assert "shh" not in repr(config)

    def test_invalid_numbers_fall_back(self, clean_env):
        clean_env.setenv("DASHBOARD_PORT", "not-a-port")
        clean_env.setenv("QUOTA_POLL_INTERVAL", "soon")
        config = MonitorConfig.from_env()
        assert config.port == 3456
        assert config.quota_poll_interval == 120


class TestMaskCredential:
    def test_masks_all_but_tail(self):
        assert mask_credential("1//0abcdefghijk") == "...fghijk"
        assert mask_credential("abc") == "***"
        assert mask_credential(None) == "<none>"
