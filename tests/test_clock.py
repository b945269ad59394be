"""
Tests for the status clock and the timer-advance path of the store.
"""

import asyncio

import pytest

from monitor_library.accounts.builder import build_account_states
from monitor_library.accounts.clock import StatusClock, advance_account, advance_rate_limit
from monitor_library.accounts.store import AccountStore
from monitor_library.core.types import AccountStatus, ModelFamily, RateLimitInfo
from monitor_library.events.broadcaster import ChangeBroadcaster
from monitor_library.events.types import (
    AccountsChanged,
    RateLimitCleared,
    Snapshot,
    StatsUpdated,
)

from conftest import NOW, account_entry, make_registry


def _broadcaster(store_ref):
    return ChangeBroadcaster(
        snapshot_provider=lambda: Snapshot(
            accounts=tuple(store_ref[0].get_accounts()), stats=store_ref[0].get_stats()
        )
    )


def _drain(subscription):
    events = []
    while True:
        envelope = subscription.get_nowait()
        if envelope is None:
            return events
        events.append(envelope.event)


# =============================================================================
# PURE TIMER ADVANCE
# =============================================================================


class TestAdvanceRateLimit:
    def test_none_stays_none(self):
        assert advance_rate_limit(None, NOW) is None

    def test_counts_down(self):
        info = RateLimitInfo.at(NOW + 10_000, NOW)
        assert advance_rate_limit(info, NOW + 4_000) == RateLimitInfo(
            NOW + 10_000, 6_000, False
        )

    def test_expiry_is_sticky(self):
        expired = advance_rate_limit(RateLimitInfo.at(NOW + 10, NOW), NOW + 10)
        assert expired.is_expired
        # Clock stepping backwards does not revive the limit
        assert advance_rate_limit(expired, NOW - 1_000) == RateLimitInfo(
            NOW + 10, 0, True
        )

    def test_advance_account_reports_flip_once(self):
        registry = make_registry(
            [account_entry("a@x.io", claude_reset=NOW + 1_000, gemini_reset=NOW + 9_000)]
        )
        (account,) = build_account_states(registry, NOW)
        first, cleared = advance_account(account, NOW + 1_000)
        assert cleared == [ModelFamily.CLAUDE]
        assert first.status == AccountStatus.RATE_LIMITED_GEMINI

        second, cleared_again = advance_account(first, NOW + 2_000)
        assert cleared_again == []
        assert second.gemini_rate_limit.time_until_reset == 7_000


# =============================================================================
# STORE INTEGRATION
# =============================================================================


class TestClockTicks:
    @pytest.mark.asyncio
    async def test_cleared_exactly_once(self):
        """Limit resets at now+60s; ticks at +30s, +61s, +91s."""
        store_ref = [None]
        broadcaster = _broadcaster(store_ref)
        store = AccountStore(broadcaster)
        store_ref[0] = store
        await store.reconcile(
            make_registry([account_entry("a@x.io", claude_reset=NOW + 60_000)]), NOW
        )
        subscription = broadcaster.subscribe()
        _drain(subscription)  # snapshot
        clock = StatusClock(store, interval=15)

        result = await clock.tick(NOW + 30_000)
        assert result.cleared == []
        assert result.changes == []
        assert _drain(subscription) == []
        # Countdown is still swapped in
        assert store.get_account("a@x.io").claude_rate_limit.time_until_reset == 30_000

        result = await clock.tick(NOW + 61_000)
        assert result.cleared == [
            RateLimitCleared(email="a@x.io", family=ModelFamily.CLAUDE)
        ]
        events = _drain(subscription)
        assert [type(e) for e in events] == [AccountsChanged, RateLimitCleared, StatsUpdated]
        (update,) = events[0].changes
        assert update.account.status == AccountStatus.AVAILABLE
        assert update.fields == ("claude_rate_limit",)
        assert events[2].stats.available_accounts == 1

        result = await clock.tick(NOW + 91_000)
        assert result.cleared == []
        assert _drain(subscription) == []
        assert store.get_account("a@x.io").status == AccountStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_new_reset_time_from_registry_relimits(self):
        store = AccountStore()
        await store.reconcile(
            make_registry([account_entry("a@x.io", claude_reset=NOW + 1_000)]), NOW
        )
        await store.advance_timers(NOW + 2_000)
        assert store.get_account("a@x.io").status == AccountStatus.AVAILABLE

        await store.reconcile(
            make_registry([account_entry("a@x.io", claude_reset=NOW + 90_000)]),
            NOW + 3_000,
        )
        assert store.get_account("a@x.io").status == AccountStatus.RATE_LIMITED_CLAUDE

    @pytest.mark.asyncio
    async def test_background_loop_ticks(self):
        store = AccountStore()
        await store.reconcile(
            make_registry([account_entry("a@x.io", claude_reset=1)]), 0
        )
        assert store.get_account("a@x.io").status == AccountStatus.RATE_LIMITED_CLAUDE

        clock = StatusClock(store, interval=0.01)
        await clock.start()
        try:
            for _ in range(100):
                if store.get_account("a@x.io").status == AccountStatus.AVAILABLE:
                    break
                await asyncio.sleep(0.01)
        finally:
            await clock.stop()
        assert store.get_account("a@x.io").status == AccountStatus.AVAILABLE
