# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""Account rate-limit and quota monitoring with live change broadcasting."""

from .config import MonitorConfig
from .core.errors import (
    MonitorError,
    QuotaFetchError,
    RegistryParseError,
    TokenRefreshError,
)
from .core.types import (
    AccountState,
    AccountStatus,
    DashboardStats,
    ModelFamily,
    ModelQuota,
    QuotaRecord,
    RateLimitInfo,
)
from .events.broadcaster import ChangeBroadcaster, Subscription
from .monitor import AccountMonitor

__all__ = [
    "AccountMonitor",
    "AccountState",
    "AccountStatus",
    "ChangeBroadcaster",
    "DashboardStats",
    "ModelFamily",
    "ModelQuota",
    "MonitorConfig",
    "MonitorError",
    "QuotaFetchError",
    "QuotaRecord",
    "RateLimitInfo",
    "RegistryParseError",
    "Subscription",
    "TokenRefreshError",
]
