# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Change broadcaster.

Fans typed monitor events out to any number of live subscribers.

Each subscriber owns an independent bounded queue, so a slow consumer
never delays the others. ``publish`` and ``subscribe`` never await: on a
single event loop this makes "read snapshot + register" atomic with
respect to publishes, which is what guarantees a new subscriber sees
neither a gap nor a duplicate between its snapshot and its first live
event.
"""

import asyncio
import itertools
import logging
import time
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Type,
)

from ..core.constants import DEFAULT_HEARTBEAT_INTERVAL, DEFAULT_SUBSCRIBER_QUEUE_SIZE
from .types import (
    MONITOR_EVENT_TYPES,
    UNSEQUENCED_EVENT_TYPES,
    Envelope,
    Heartbeat,
    MonitorEvent,
    Snapshot,
)

lib_logger = logging.getLogger("monitor_library")

Listener = Callable[[Envelope], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class Subscription:
    """
    Handle for one live subscriber.

    Iterate it (``async for envelope in subscription``) or call ``get()``.
    Iteration ends once the subscription is closed, either by the consumer
    or by the broadcaster dropping it.

    ``seq`` counts every state-bearing publish, not just the ones this
    subscription accepts, so gap detection only holds when ``event_types``
    is None.

    Usage:
        subscription = broadcaster.subscribe()
        try:
            async for envelope in subscription:
                await websocket.send_text(envelope.to_json())
        finally:
            subscription.close()
    """

    def __init__(
        self,
        broadcaster: "ChangeBroadcaster",
        subscriber_id: int,
        maxsize: int,
        event_types: Optional[FrozenSet[Type[Any]]] = None,
    ):
        self._broadcaster = broadcaster
        self.id = subscriber_id
        self.event_types = event_types
        # One extra slot so the close sentinel always fits
        self._queue: "asyncio.Queue[Optional[Envelope]]" = asyncio.Queue(
            maxsize=maxsize + 1
        )
        self._maxsize = maxsize
        self._closed = False
        self.dropped = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def accepts(self, event: MonitorEvent) -> bool:
        """Snapshots are always delivered; other events honor the type filter."""
        if self.event_types is None or isinstance(event, Snapshot):
            return True
        return type(event) in self.event_types

    def _offer(self, envelope: Envelope) -> bool:
        """Enqueue without blocking. False means the subscriber must be dropped."""
        if self._closed or self._queue.qsize() >= self._maxsize:
            return False
        self._queue.put_nowait(envelope)
        return True

    def _terminate(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Pending events are discarded; a dropped subscriber resubscribes
        # and receives a fresh snapshot.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def get(self) -> Envelope:
        """
        Wait for the next envelope.

        Raises:
            StopAsyncIteration: If the subscription has been closed
        """
        envelope = await self._queue.get()
        if envelope is None:
            # Leave the sentinel in place for any other waiter
            self._queue.put_nowait(None)
            raise StopAsyncIteration
        return envelope

    def get_nowait(self) -> Optional[Envelope]:
        """Return the next queued envelope, or None if nothing is queued."""
        try:
            envelope = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if envelope is None:
            self._queue.put_nowait(None)
        return envelope

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Envelope:
        return await self.get()

    def close(self) -> None:
        """Unregister and end iteration."""
        self._broadcaster.unsubscribe(self)


class ChangeBroadcaster:
    """
    Owns the live subscriber set and the event sequence.

    Example:
        broadcaster = ChangeBroadcaster(snapshot_provider=store_snapshot)
        await broadcaster.start()           # heartbeat task
        subscription = broadcaster.subscribe()
        broadcaster.publish(StatsUpdated(stats))
    """

    def __init__(
        self,
        snapshot_provider: Callable[[], Snapshot],
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE,
    ):
        """
        Initialize the broadcaster.

        Args:
            snapshot_provider: Returns the full current state; called
                synchronously whenever a subscriber joins
            heartbeat_interval: Seconds between heartbeat events
            queue_size: Pending events allowed per subscriber before it
                is considered stuck and dropped
        """
        self._snapshot_provider = snapshot_provider
        self._heartbeat_interval = heartbeat_interval
        self._queue_size = queue_size
        self._subscribers: Dict[int, Subscription] = {}
        self._listeners: Dict[Type[Any], List[Listener]] = {}
        self._ids = itertools.count(1)
        self._seq = 0
        self._heartbeat_task: Optional[asyncio.Task] = None

    # =========================================================================
    # SUBSCRIBERS
    # =========================================================================

    def subscribe(
        self, event_types: Optional[Iterable[Type[Any]]] = None
    ) -> Subscription:
        """
        Register a subscriber whose first envelope is a full snapshot.

        Args:
            event_types: Optional event classes to receive; None means all

        Returns:
            The new Subscription
        """
        types = None
        if event_types is not None:
            types = frozenset(event_types)
            unknown = [t for t in types if t not in MONITOR_EVENT_TYPES]
            if unknown:
                raise ValueError(f"Unknown event types: {unknown}")

        subscription = Subscription(self, next(self._ids), self._queue_size, types)
        # No await between reading the snapshot and registering the queue
        snapshot = self._snapshot_provider()
        subscription._offer(self._envelope(snapshot))
        self._subscribers[subscription.id] = subscription
        lib_logger.debug(
            f"Subscriber {subscription.id} joined ({len(self._subscribers)} total)"
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._subscribers.pop(subscription.id, None) is not None:
            lib_logger.debug(
                f"Subscriber {subscription.id} left "
                f"({len(self._subscribers)} remaining)"
            )
        subscription._terminate()

    def _drop(self, subscription: Subscription) -> None:
        subscription.dropped = True
        lib_logger.debug(
            f"Dropping subscriber {subscription.id} "
            f"({subscription.pending} undelivered events)"
        )
        self.unsubscribe(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # =========================================================================
    # TYPED LISTENERS
    # =========================================================================

    def add_listener(self, event_type: Type[Any], listener: Listener) -> None:
        """Register an in-process callback for one event class."""
        if event_type not in MONITOR_EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type!r}")
        self._listeners.setdefault(event_type, []).append(listener)

    def remove_listener(self, event_type: Type[Any], listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    # =========================================================================
    # PUBLISHING
    # =========================================================================

    @property
    def seq(self) -> int:
        return self._seq

    def _envelope(self, event: MonitorEvent) -> Envelope:
        return Envelope(event=event, seq=self._seq, timestamp=_now_ms())

    def publish(self, event: MonitorEvent) -> Envelope:
        """
        Deliver an event to every current subscriber, in publish order.

        Never blocks. Subscribers that are closed or whose queue is full
        are removed and never retried.
        """
        if not isinstance(event, UNSEQUENCED_EVENT_TYPES):
            self._seq += 1
        envelope = self._envelope(event)

        for subscription in list(self._subscribers.values()):
            if not subscription.accepts(event):
                continue
            if not subscription._offer(envelope):
                self._drop(subscription)

        for listener in list(self._listeners.get(type(event), ())):
            try:
                listener(envelope)
            except Exception as e:
                lib_logger.warning(
                    f"Listener for {envelope.type.value} failed: "
                    f"{type(e).__name__}: {e}"
                )

        return envelope

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                self.publish(Heartbeat())
            except Exception as e:
                lib_logger.error(f"Heartbeat failed: {e}")

    async def start(self) -> None:
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def stop(self) -> None:
        """Stop heartbeats and close every subscription."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for subscription in list(self._subscribers.values()):
            self.unsubscribe(subscription)
