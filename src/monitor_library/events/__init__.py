# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .broadcaster import ChangeBroadcaster, Subscription
from .types import (
    AccountAdded,
    AccountRemoved,
    AccountsChanged,
    AccountUpdated,
    Envelope,
    EventType,
    Heartbeat,
    QuotaUpdated,
    RateLimitCleared,
    Snapshot,
    StatsUpdated,
)

__all__ = [
    "AccountAdded",
    "AccountRemoved",
    "AccountUpdated",
    "AccountsChanged",
    "ChangeBroadcaster",
    "Envelope",
    "EventType",
    "Heartbeat",
    "QuotaUpdated",
    "RateLimitCleared",
    "Snapshot",
    "StatsUpdated",
    "Subscription",
]
