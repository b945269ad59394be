"""
Tests for the change broadcaster: snapshot-first delivery, ordering,
slow-subscriber handling, typed dispatch and heartbeats.
"""

import asyncio

import pytest

from monitor_library.core.types import DashboardStats, ModelFamily
from monitor_library.events.broadcaster import ChangeBroadcaster
from monitor_library.events.types import (
    AccountsChanged,
    AccountRemoved,
    Heartbeat,
    RateLimitCleared,
    Snapshot,
    StatsUpdated,
)


class _State:
    """Stand-in state owner whose snapshot reflects every published stat."""

    def __init__(self):
        self.total = 0

    def snapshot(self):
        return Snapshot(accounts=(), stats=DashboardStats(total_accounts=self.total))


def _stats(total):
    return StatsUpdated(stats=DashboardStats(total_accounts=total))


def _drain(subscription):
    envelopes = []
    while True:
        envelope = subscription.get_nowait()
        if envelope is None:
            return envelopes
        envelopes.append(envelope)


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_snapshot_is_first(self):
        state = _State()
        broadcaster = ChangeBroadcaster(state.snapshot)
        subscription = broadcaster.subscribe()

        envelope = await subscription.get()
        assert isinstance(envelope.event, Snapshot)
        assert envelope.to_dict()["type"] == "initial"
        assert broadcaster.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_mid_stream_join_sees_no_gap_or_duplicate(self):
        """Publish e1..e5, join, publish e6..e10."""
        state = _State()
        broadcaster = ChangeBroadcaster(state.snapshot)
        early = broadcaster.subscribe()

        for n in range(1, 6):
            state.total = n
            broadcaster.publish(_stats(n))
        late = broadcaster.subscribe()
        for n in range(6, 11):
            state.total = n
            broadcaster.publish(_stats(n))

        late_envelopes = _drain(late)
        snapshot, *live = late_envelopes
        assert snapshot.event.stats.total_accounts == 5
        assert snapshot.seq == 5
        assert [e.event.stats.total_accounts for e in live] == list(range(6, 11))
        assert [e.seq for e in live] == list(range(6, 11))

        early_envelopes = _drain(early)[1:]
        assert [e.event.stats.total_accounts for e in early_envelopes] == list(
            range(1, 11)
        )

    def test_unknown_event_type_rejected(self):
        broadcaster = ChangeBroadcaster(_State().snapshot)
        with pytest.raises(ValueError):
            broadcaster.subscribe(event_types=[dict])


class TestPublish:
    @pytest.mark.asyncio
    async def test_fifo_per_subscriber(self):
        broadcaster = ChangeBroadcaster(_State().snapshot)
        subscription = broadcaster.subscribe()
        await subscription.get()

        events = [
            _stats(1),
            AccountsChanged(changes=(AccountRemoved(email="a@x.io"),)),
            RateLimitCleared(email="b@x.io", family=ModelFamily.GEMINI),
        ]
        for event in events:
            broadcaster.publish(event)

        received = [(await subscription.get()).event for _ in events]
        assert received == events

    @pytest.mark.asyncio
    async def test_slow_subscriber_is_dropped(self):
        broadcaster = ChangeBroadcaster(_State().snapshot, queue_size=3)
        slow = broadcaster.subscribe()
        fast = broadcaster.subscribe()

        for n in range(5):
            broadcaster.publish(_stats(n))
            _drain(fast)

        assert slow.dropped
        assert slow.closed
        assert broadcaster.subscriber_count == 1
        with pytest.raises(StopAsyncIteration):
            await slow.get()
        # Dropped subscribers are never retried
        broadcaster.publish(_stats(99))
        assert not fast.dropped
        assert [e.event.stats.total_accounts for e in _drain(fast)] == [99]

    @pytest.mark.asyncio
    async def test_type_filter(self):
        broadcaster = ChangeBroadcaster(_State().snapshot)
        subscription = broadcaster.subscribe(event_types=[RateLimitCleared])

        broadcaster.publish(_stats(1))
        broadcaster.publish(RateLimitCleared(email="a@x.io", family=ModelFamily.CLAUDE))

        envelopes = _drain(subscription)
        assert [type(e.event) for e in envelopes] == [Snapshot, RateLimitCleared]
        # The filtered-out event still advanced the sequence
        assert envelopes[1].seq == 2

    @pytest.mark.asyncio
    async def test_sequence_is_contiguous_only_when_unfiltered(self):
        broadcaster = ChangeBroadcaster(_State().snapshot)
        everything = broadcaster.subscribe()
        cleared_only = broadcaster.subscribe(event_types=[RateLimitCleared])

        for total in range(3):
            broadcaster.publish(_stats(total))
            broadcaster.publish(
                RateLimitCleared(email="a@x.io", family=ModelFamily.CLAUDE)
            )

        assert [e.seq for e in _drain(everything)] == [0, 1, 2, 3, 4, 5, 6]
        assert [e.seq for e in _drain(cleared_only)] == [0, 2, 4, 6]

    def test_listeners_and_failing_listener(self):
        broadcaster = ChangeBroadcaster(_State().snapshot)
        seen = []

        def broken(envelope):
            raise RuntimeError("boom")

        broadcaster.add_listener(StatsUpdated, broken)
        broadcaster.add_listener(StatsUpdated, seen.append)
        broadcaster.publish(_stats(3))
        broadcaster.publish(RateLimitCleared(email="a@x.io", family=ModelFamily.CLAUDE))

        assert [e.event.stats.total_accounts for e in seen] == [3]
        broadcaster.remove_listener(StatsUpdated, seen.append)
        broadcaster.publish(_stats(4))
        assert len(seen) == 1

    def test_envelope_json(self):
        broadcaster = ChangeBroadcaster(_State().snapshot)
        envelope = broadcaster.publish(_stats(2))
        data = envelope.to_dict()
        assert data["type"] == "stats_update"
        assert data["seq"] == 1
        assert data["data"]["total_accounts"] == 2
        assert '"stats_update"' in envelope.to_json()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_heartbeat_does_not_advance_seq(self):
        broadcaster = ChangeBroadcaster(_State().snapshot, heartbeat_interval=0.01)
        subscription = broadcaster.subscribe()
        await subscription.get()
        broadcaster.publish(_stats(1))
        await subscription.get()

        await broadcaster.start()
        try:
            envelope = await asyncio.wait_for(subscription.get(), timeout=2.0)
        finally:
            await broadcaster.stop()

        assert isinstance(envelope.event, Heartbeat)
        assert envelope.seq == 1
        assert broadcaster.seq == 1

    @pytest.mark.asyncio
    async def test_stop_ends_iteration(self):
        broadcaster = ChangeBroadcaster(_State().snapshot)
        subscription = broadcaster.subscribe()
        await broadcaster.stop()

        received = [envelope async for envelope in subscription]
        assert received == []
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self):
        broadcaster = ChangeBroadcaster(_State().snapshot)
        subscription = broadcaster.subscribe()
        subscription.close()
        assert broadcaster.subscriber_count == 0
        assert subscription.closed
        assert not subscription.dropped
