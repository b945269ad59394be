# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Monitor configuration.

Values come from environment variables (optionally via a .env file loaded
by the entry point) with defaults from core.constants.

Environment variables:
    ACCOUNTS_FILE_PATH: Account registry file
    REGISTRY_DEBOUNCE_MS: Quiet period before a write is considered settled (default: 100)
    REGISTRY_WATCH_ENABLED: Watch the registry for changes (default: true)
    STATUS_CLOCK_INTERVAL: Seconds between rate-limit timer ticks (default: 15)
    QUOTA_POLL_ENABLED: Run the background quota poller (default: true)
    QUOTA_POLL_INTERVAL: Seconds between quota poll cycles (default: 120)
    QUOTA_ACCOUNT_DELAY_MS: Pause between accounts in one cycle (default: 500)
    QUOTA_REQUEST_TIMEOUT: Timeout in seconds for each external call (default: 15)
    QUOTA_ENDPOINTS: Comma-separated quota endpoints in preference order
    GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET: OAuth client used for token refresh
    HEARTBEAT_INTERVAL: Seconds between subscriber heartbeats (default: 30)
    SUBSCRIBER_QUEUE_SIZE: Pending events allowed per subscriber (default: 256)
    DASHBOARD_HOST / DASHBOARD_PORT: Bind address of the subscriber endpoint
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from .core.constants import (
    DEFAULT_ACCOUNT_DELAY_SECONDS,
    DEFAULT_ACCOUNTS_FILE,
    DEFAULT_CLIENT_ID,
    DEFAULT_DASHBOARD_HOST,
    DEFAULT_DASHBOARD_PORT,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_QUOTA_POLL_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_STATUS_CLOCK_INTERVAL,
    DEFAULT_SUBSCRIBER_QUEUE_SIZE,
    QUOTA_ENDPOINTS,
    TOKEN_ENDPOINT,
)

lib_logger = logging.getLogger("monitor_library")


def _env_int(name: str, default: int) -> int:
    """Parse an integer from environment variable with fallback to default."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        lib_logger.warning(f"Invalid {name} value {raw!r}, using default {default}")
        return default


def _env_float(name: str, default: float) -> float:
    """Parse a float from environment variable with fallback to default."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        lib_logger.warning(f"Invalid {name} value {raw!r}, using default {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class MonitorConfig:
    """Complete configuration for an AccountMonitor."""

    accounts_file: Path = DEFAULT_ACCOUNTS_FILE
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    watch_registry: bool = True
    status_clock_interval: float = DEFAULT_STATUS_CLOCK_INTERVAL

    quota_poll_enabled: bool = True
    quota_poll_interval: float = DEFAULT_QUOTA_POLL_INTERVAL
    quota_account_delay: float = DEFAULT_ACCOUNT_DELAY_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    quota_endpoints: Tuple[str, ...] = QUOTA_ENDPOINTS
    token_endpoint: str = TOKEN_ENDPOINT
    client_id: str = DEFAULT_CLIENT_ID
    client_secret: str = field(default="", repr=False)

    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    subscriber_queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE

    host: str = DEFAULT_DASHBOARD_HOST
    port: int = DEFAULT_DASHBOARD_PORT

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        """Build a config from the current process environment."""
        endpoints_raw = os.environ.get("QUOTA_ENDPOINTS", "")
        endpoints = tuple(
            e.strip().rstrip("/") for e in endpoints_raw.split(",") if e.strip()
        )
        accounts_file = os.environ.get("ACCOUNTS_FILE_PATH")

        return cls(
            accounts_file=(
                Path(accounts_file).expanduser()
                if accounts_file
                else DEFAULT_ACCOUNTS_FILE
            ),
            debounce_seconds=max(
                0.0,
                _env_int(
                    "REGISTRY_DEBOUNCE_MS", int(DEFAULT_DEBOUNCE_SECONDS * 1000)
                )
                / 1000,
            ),
            watch_registry=_env_bool("REGISTRY_WATCH_ENABLED", True),
            status_clock_interval=max(
                1.0,
                _env_float("STATUS_CLOCK_INTERVAL", DEFAULT_STATUS_CLOCK_INTERVAL),
            ),
            quota_poll_enabled=_env_bool("QUOTA_POLL_ENABLED", True),
            quota_poll_interval=max(
                1.0, _env_float("QUOTA_POLL_INTERVAL", DEFAULT_QUOTA_POLL_INTERVAL)
            ),
            quota_account_delay=max(
                0.0,
                _env_int(
                    "QUOTA_ACCOUNT_DELAY_MS",
                    int(DEFAULT_ACCOUNT_DELAY_SECONDS * 1000),
                )
                / 1000,
            ),
            request_timeout=max(
                1.0, _env_float("QUOTA_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)
            ),
            quota_endpoints=endpoints or QUOTA_ENDPOINTS,
            client_id=os.environ.get("GOOGLE_CLIENT_ID") or DEFAULT_CLIENT_ID,
            client_secret=os.environ.get("GOOGLE_CLIENT_SECRET", ""),
            heartbeat_interval=max(
                1.0, _env_float("HEARTBEAT_INTERVAL", DEFAULT_HEARTBEAT_INTERVAL)
            ),
            subscriber_queue_size=max(
                1, _env_int("SUBSCRIBER_QUEUE_SIZE", DEFAULT_SUBSCRIBER_QUEUE_SIZE)
            ),
            host=os.environ.get("DASHBOARD_HOST", DEFAULT_DASHBOARD_HOST),
            port=_env_int("DASHBOARD_PORT", DEFAULT_DASHBOARD_PORT),
        )
