# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
AccountMonitor - wires the monitor components together.

Every component is constructed explicitly here and started/stopped in
dependency order. Nothing is a module-level singleton, so tests and
embedding applications can run several monitors side by side.
"""

import logging
import math
from pathlib import Path
from typing import List, Optional

import httpx

from .accounts.clock import StatusClock
from .accounts.store import AccountStore
from .accounts.watcher import RegistryWatcher
from .config import MonitorConfig
from .core.types import (
    AccountState,
    AccountStatus,
    DashboardStats,
    ModelFamily,
    QuotaRecord,
)
from .events.broadcaster import ChangeBroadcaster, Subscription
from .events.types import Snapshot
from .quota.poller import QuotaPoller
from .quota.tokens import TokenManager

lib_logger = logging.getLogger("monitor_library")


class AccountMonitor:
    """
    Facade over the account store, registry watcher, status clock,
    quota poller and change broadcaster.

    Example:
        monitor = AccountMonitor(MonitorConfig.from_env())
        await monitor.start()
        subscription = monitor.subscribe()
        async for envelope in subscription:
            ...
        await monitor.stop()
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Build all components.

        Args:
            config: Monitor configuration; defaults to MonitorConfig()
            http_client: Optional client shared by token and quota calls
        """
        self.config = config or MonitorConfig()
        cfg = self.config

        self.broadcaster = ChangeBroadcaster(
            snapshot_provider=self._build_snapshot,
            heartbeat_interval=cfg.heartbeat_interval,
            queue_size=cfg.subscriber_queue_size,
        )
        self.store = AccountStore(self.broadcaster)
        self.watcher = RegistryWatcher(
            cfg.accounts_file,
            self.store.reconcile,
            debounce_seconds=cfg.debounce_seconds,
        )
        self.clock = StatusClock(self.store, interval=cfg.status_clock_interval)
        self.tokens = TokenManager(
            client_id=cfg.client_id,
            client_secret=cfg.client_secret,
            token_endpoint=cfg.token_endpoint,
            timeout=cfg.request_timeout,
        )
        self.poller = QuotaPoller(
            self.store.get_quota_targets,
            token_manager=self.tokens,
            broadcaster=self.broadcaster,
            endpoints=cfg.quota_endpoints,
            poll_interval=cfg.quota_poll_interval,
            account_delay=cfg.quota_account_delay,
            request_timeout=cfg.request_timeout,
            http_client=http_client,
        )
        self._running = False

    def _build_snapshot(self) -> Snapshot:
        return Snapshot(
            accounts=tuple(self.store.get_accounts()),
            stats=self.store.get_stats(),
            quotas=tuple(self.poller.get_cached_quotas()),
            quota_cache_age=self.poller.get_cache_age_or_none(),
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Load the registry once, then start every background component."""
        if self._running:
            return
        cfg = self.config
        lib_logger.info(f"Starting account monitor for {self.watcher.path}")

        await self.watcher.load_now()
        await self.watcher.start(watch_filesystem=cfg.watch_registry)
        await self.clock.start()
        if cfg.quota_poll_enabled:
            await self.poller.start()
        else:
            lib_logger.info("Quota polling disabled")
        await self.broadcaster.start()
        self._running = True

    async def stop(self) -> None:
        """Stop components in reverse order and close every subscription."""
        if not self._running:
            return
        await self.poller.stop()
        await self.clock.stop()
        await self.watcher.stop()
        await self.broadcaster.stop()
        self._running = False
        lib_logger.info("Account monitor stopped")

    async def __aenter__(self) -> "AccountMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # =========================================================================
    # SUBSCRIBERS
    # =========================================================================

    def subscribe(self, event_types=None) -> Subscription:
        return self.broadcaster.subscribe(event_types)

    @property
    def subscriber_count(self) -> int:
        return self.broadcaster.subscriber_count

    # =========================================================================
    # ACCOUNT QUERIES
    # =========================================================================

    def get_accounts(self) -> List[AccountState]:
        return self.store.get_accounts()

    def get_account(self, email: str) -> Optional[AccountState]:
        return self.store.get_account(email)

    def get_active_account(self) -> Optional[AccountState]:
        return self.store.get_active_account()

    def get_active_account_for_family(
        self, family: ModelFamily
    ) -> Optional[AccountState]:
        return self.store.get_active_account_for_family(ModelFamily(family))

    def get_accounts_by_status(self, status: AccountStatus) -> List[AccountState]:
        return self.store.get_accounts_by_status(AccountStatus(status))

    def get_rate_limited_accounts(self) -> List[AccountState]:
        return self.store.get_rate_limited_accounts()

    def get_available_accounts(self) -> List[AccountState]:
        return self.store.get_available_accounts()

    def get_stats(self) -> DashboardStats:
        return self.store.get_stats()

    def get_registry_path(self) -> Path:
        return self.watcher.path

    def registry_exists(self) -> bool:
        return self.watcher.path.is_file()

    # =========================================================================
    # QUOTA QUERIES
    # =========================================================================

    def get_cached_quotas(self) -> List[QuotaRecord]:
        return self.poller.get_cached_quotas()

    def get_cached_quota(self, email: str) -> Optional[QuotaRecord]:
        return self.poller.get_cached_quota(email)

    def get_quota_cache_age(self) -> float:
        """Milliseconds since the last successful quota cycle; inf if none."""
        return self.poller.get_cache_age()

    def is_quota_cache_stale(self) -> bool:
        return self.poller.is_stale()

    async def get_quotas(self, refresh_if_stale: bool = True) -> List[QuotaRecord]:
        return await self.poller.get_quotas(refresh_if_stale=refresh_if_stale)

    async def force_quota_refresh(self) -> List[QuotaRecord]:
        return await self.poller.force_refresh()

    def describe(self) -> str:
        """One-line status summary for logs and the startup banner."""
        stats = self.get_stats()
        age = self.get_quota_cache_age()
        age_text = "never" if math.isinf(age) else f"{age / 1000:.0f}s ago"
        return (
            f"{stats.total_accounts} accounts, "
            f"{stats.available_accounts} available, "
            f"{stats.rate_limited_accounts} rate limited, "
            f"quotas fetched {age_text}"
        )
