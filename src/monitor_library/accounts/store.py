# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
AccountStore - the single owner of the account state list.

Two writers mutate the list: registry reconciliation and the status clock.
Both run under one asyncio.Lock, build a complete new tuple, swap it in,
and publish their events before releasing the lock. Readers only ever see
a whole tuple, never a partially updated one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ..core.types import (
    AccountState,
    AccountStatus,
    DashboardStats,
    ModelFamily,
    QuotaTarget,
    RawRegistry,
)
from ..events.types import (
    AccountsChanged,
    AccountUpdated,
    ChangeEvent,
    MonitorEvent,
    RateLimitCleared,
    StatsUpdated,
)
from .builder import build_account_states
from .clock import advance_account
from .diff import changed_fields, diff_accounts

if TYPE_CHECKING:
    from ..events.broadcaster import ChangeBroadcaster

lib_logger = logging.getLogger("monitor_library")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class TickResult:
    """Outcome of one status clock evaluation."""

    cleared: List[RateLimitCleared] = field(default_factory=list)
    changes: List[ChangeEvent] = field(default_factory=list)


class AccountStore:
    """
    Holds the current AccountState list and answers queries about it.

    Example:
        store = AccountStore(broadcaster)
        await store.reconcile(load_registry(path))
        active = store.get_active_account()
    """

    def __init__(self, broadcaster: Optional["ChangeBroadcaster"] = None):
        self._broadcaster = broadcaster
        self._accounts: Tuple[AccountState, ...] = ()
        self._targets: Dict[str, QuotaTarget] = {}
        self._last_update: int = 0
        self._loaded = False
        self._lock = asyncio.Lock()

    def _publish(self, event: MonitorEvent) -> None:
        if self._broadcaster is not None:
            self._broadcaster.publish(event)

    # =========================================================================
    # WRITERS
    # =========================================================================

    async def reconcile(
        self, registry: Optional[RawRegistry], now: Optional[int] = None
    ) -> List[ChangeEvent]:
        """
        Replace the account list with the state built from ``registry``.

        Args:
            registry: New registry snapshot; None means the registry is absent
                and every known account is removed
            now: Evaluation time in epoch milliseconds

        Returns:
            The changes that were published
        """
        if now is None:
            now = _now_ms()

        async with self._lock:
            current = build_account_states(registry, now)
            changes = diff_accounts(self._accounts, current)

            self._accounts = tuple(current)
            self._targets = self._build_targets(registry)
            self._last_update = now
            self._loaded = True

            if changes:
                self._publish(AccountsChanged(changes=tuple(changes)))
                self._publish(StatsUpdated(stats=self.get_stats()))

        lib_logger.info(
            f"Loaded {len(current)} accounts ({len(changes)} changes)"
            if registry is not None
            else f"Account registry absent, cleared ({len(changes)} changes)"
        )
        return changes

    async def advance_timers(self, now: Optional[int] = None) -> TickResult:
        """
        Re-evaluate every rate-limit timer at ``now``.

        Accounts whose expiry or status flipped are published as scoped
        updates; countdown-only changes are swapped in silently.
        """
        if now is None:
            now = _now_ms()

        result = TickResult()
        async with self._lock:
            advanced: List[AccountState] = []
            for account in self._accounts:
                updated, cleared = advance_account(account, now)
                advanced.append(updated)

                for family in cleared:
                    result.cleared.append(
                        RateLimitCleared(email=account.email, family=family)
                    )
                if cleared or updated.status != account.status:
                    result.changes.append(
                        AccountUpdated(
                            email=account.email,
                            account=updated,
                            fields=tuple(changed_fields(account, updated)),
                        )
                    )

            self._accounts = tuple(advanced)

            if result.changes:
                self._last_update = now
                self._publish(AccountsChanged(changes=tuple(result.changes)))
            for event in result.cleared:
                self._publish(event)
            if result.changes:
                self._publish(StatsUpdated(stats=self.get_stats()))

        return result

    @staticmethod
    def _build_targets(registry: Optional[RawRegistry]) -> Dict[str, QuotaTarget]:
        if registry is None:
            return {}
        targets: Dict[str, QuotaTarget] = {}
        for _, record in registry.iter_records():
            if not record.refresh_token:
                continue
            targets[record.email] = QuotaTarget(
                email=record.email,
                refresh_token=record.refresh_token,
                project_id=record.project_id or record.managed_project_id,
            )
        return targets

    # =========================================================================
    # READERS
    # =========================================================================

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get_accounts(self) -> List[AccountState]:
        return list(self._accounts)

    def get_account(self, email: str) -> Optional[AccountState]:
        for account in self._accounts:
            if account.email == email:
                return account
        return None

    def get_active_account(self) -> Optional[AccountState]:
        return next((a for a in self._accounts if a.is_active), None)

    def get_active_account_for_family(
        self, family: ModelFamily
    ) -> Optional[AccountState]:
        return next((a for a in self._accounts if a.is_active_for(family)), None)

    def get_accounts_by_status(self, status: AccountStatus) -> List[AccountState]:
        return [a for a in self._accounts if a.status == status]

    def get_rate_limited_accounts(self) -> List[AccountState]:
        return [a for a in self._accounts if a.status != AccountStatus.AVAILABLE]

    def get_available_accounts(self) -> List[AccountState]:
        return self.get_accounts_by_status(AccountStatus.AVAILABLE)

    def get_stats(self) -> DashboardStats:
        accounts = self._accounts
        by_status = {status.value: 0 for status in AccountStatus}
        for account in accounts:
            by_status[account.status.value] += 1
        active = self.get_active_account()
        return DashboardStats(
            total_accounts=len(accounts),
            available_accounts=by_status[AccountStatus.AVAILABLE.value],
            rate_limited_accounts=len(accounts)
            - by_status[AccountStatus.AVAILABLE.value],
            active_account=active.email if active else None,
            by_status=by_status,
            last_update=self._last_update,
        )

    def get_quota_targets(self) -> List[QuotaTarget]:
        """Credentials of the current accounts, in registry order."""
        return list(self._targets.values())
