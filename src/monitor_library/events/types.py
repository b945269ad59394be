# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Typed events published by the monitor.

Two layers:
- ChangeEvent (AccountAdded / AccountUpdated / AccountRemoved) describes
  one account-level change produced by the diff engine or status clock.
- MonitorEvent is everything a subscriber can receive. Each concrete class
  has a fixed wire type; the set is closed (see MONITOR_EVENT_TYPES).

Events are wrapped in an Envelope at publish time, which adds the
timestamp and the sequence number used for gap detection.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union

from ..core.types import AccountState, DashboardStats, ModelFamily, QuotaRecord


class EventType(str, Enum):
    """Wire names of the monitor events."""

    INITIAL = "initial"
    ACCOUNTS_UPDATE = "accounts_update"
    RATE_LIMIT_CHANGE = "rate_limit_change"
    STATS_UPDATE = "stats_update"
    QUOTA_UPDATE = "quota_update"
    HEARTBEAT = "heartbeat"


# =============================================================================
# ACCOUNT CHANGE EVENTS
# =============================================================================


@dataclass(frozen=True)
class AccountAdded:
    account: AccountState
    op: ClassVar[str] = "add"

    @property
    def email(self) -> str:
        return self.account.email

    def to_dict(self) -> Dict[str, Any]:
        return {"op": self.op, "email": self.email, "account": self.account.to_dict()}


@dataclass(frozen=True)
class AccountUpdated:
    """Carries the full new state; ``fields`` names what changed."""

    email: str
    account: AccountState
    fields: Tuple[str, ...] = ()
    op: ClassVar[str] = "update"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "op": self.op,
            "email": self.email,
            "changes": self.account.to_dict(),
            "fields": list(self.fields),
        }


@dataclass(frozen=True)
class AccountRemoved:
    email: str
    op: ClassVar[str] = "remove"

    def to_dict(self) -> Dict[str, Any]:
        return {"op": self.op, "email": self.email}


ChangeEvent = Union[AccountAdded, AccountUpdated, AccountRemoved]


# =============================================================================
# MONITOR EVENTS
# =============================================================================


@dataclass(frozen=True)
class Snapshot:
    """Full current state; always the first event a subscriber receives."""

    accounts: Tuple[AccountState, ...]
    stats: DashboardStats
    quotas: Tuple[QuotaRecord, ...] = ()
    quota_cache_age: Optional[float] = None
    event_type: ClassVar[EventType] = EventType.INITIAL

    def payload(self) -> Dict[str, Any]:
        return {
            "accounts": [a.to_dict() for a in self.accounts],
            "stats": self.stats.to_dict(),
            "quotas": [q.to_dict() for q in self.quotas],
            "quota_cache_age": self.quota_cache_age,
        }


@dataclass(frozen=True)
class AccountsChanged:
    """All account changes from one reconciliation pass or clock tick."""

    changes: Tuple[ChangeEvent, ...]
    event_type: ClassVar[EventType] = EventType.ACCOUNTS_UPDATE

    def payload(self) -> Dict[str, Any]:
        return {"diffs": [c.to_dict() for c in self.changes]}


@dataclass(frozen=True)
class RateLimitCleared:
    """A family's rate limit on one account has just expired."""

    email: str
    family: ModelFamily
    event_type: ClassVar[EventType] = EventType.RATE_LIMIT_CHANGE

    def payload(self) -> Dict[str, Any]:
        return {"email": self.email, "family": self.family.value, "cleared": True}


@dataclass(frozen=True)
class StatsUpdated:
    stats: DashboardStats
    event_type: ClassVar[EventType] = EventType.STATS_UPDATE

    def payload(self) -> Dict[str, Any]:
        return self.stats.to_dict()


@dataclass(frozen=True)
class QuotaUpdated:
    quotas: Tuple[QuotaRecord, ...]
    cache_age: Optional[float] = None
    is_stale: bool = False
    event_type: ClassVar[EventType] = EventType.QUOTA_UPDATE

    def payload(self) -> Dict[str, Any]:
        return {
            "quotas": [q.to_dict() for q in self.quotas],
            "cache_age": self.cache_age,
            "is_stale": self.is_stale,
        }


@dataclass(frozen=True)
class Heartbeat:
    """Liveness signal; not a state change."""

    event_type: ClassVar[EventType] = EventType.HEARTBEAT

    def payload(self) -> Dict[str, Any]:
        return {}


MonitorEvent = Union[
    Snapshot, AccountsChanged, RateLimitCleared, StatsUpdated, QuotaUpdated, Heartbeat
]

MONITOR_EVENT_TYPES: Tuple[Type[Any], ...] = (
    Snapshot,
    AccountsChanged,
    RateLimitCleared,
    StatsUpdated,
    QuotaUpdated,
    Heartbeat,
)

# Events that do not advance the sequence number
UNSEQUENCED_EVENT_TYPES: Tuple[Type[Any], ...] = (Snapshot, Heartbeat)


@dataclass(frozen=True)
class Envelope:
    """
    A published event as delivered to subscribers.

    ``seq`` is the sequence number of the last state-bearing event at the
    time of delivery. Snapshots and heartbeats repeat the current value,
    so a jump of more than one between consecutive envelopes means the
    consumer missed something. The sequence is shared by all subscribers:
    a subscription filtered by event type sees jumps for the events it
    skipped, so only unfiltered subscriptions can treat a jump as loss.
    """

    event: MonitorEvent
    seq: int
    timestamp: int = field(default=0)

    @property
    def type(self) -> EventType:
        return self.event.event_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.event.payload(),
            "timestamp": self.timestamp,
            "seq": self.seq,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
