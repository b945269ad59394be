# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Shared type definitions for the monitor library.

This module contains dataclasses and type definitions used across
the accounts, quota and events packages.

All account timestamps are epoch milliseconds, matching the registry file.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class ModelFamily(str, Enum):
    """API families that carry independent rate limits."""

    CLAUDE = "claude"
    GEMINI = "gemini"


class AccountStatus(str, Enum):
    """Composite account status derived from both family rate limits."""

    AVAILABLE = "available"
    RATE_LIMITED_CLAUDE = "rate_limited_claude"
    RATE_LIMITED_GEMINI = "rate_limited_gemini"
    RATE_LIMITED_ALL = "rate_limited_all"


# =============================================================================
# RAW REGISTRY TYPES (external, untrusted)
# =============================================================================


@dataclass(frozen=True)
class RawAccountRecord:
    """
    One account entry as read from the registry file.

    Not owned by the monitor - a read-only snapshot ingested on each
    registry change.
    """

    email: str
    refresh_token: str  # Opaque credential, never broadcast
    project_id: Optional[str] = None
    managed_project_id: Optional[str] = None
    added_at: int = 0
    last_used: int = 0
    rate_limit_reset_times: Dict[ModelFamily, int] = field(default_factory=dict)


@dataclass(frozen=True)
class RawRegistry:
    """Parsed registry document."""

    # None marks an entry that was skipped but still occupies its index
    accounts: Tuple[Optional[RawAccountRecord], ...] = ()
    active_index: Optional[int] = None
    active_index_by_family: Dict[ModelFamily, int] = field(default_factory=dict)
    version: int = 1

    def active_index_for(self, family: ModelFamily) -> Optional[int]:
        """Per-family active pointer, defaulting to the global pointer."""
        return self.active_index_by_family.get(family, self.active_index)

    def iter_records(self) -> Iterator[Tuple[int, RawAccountRecord]]:
        """Yield (position, record) for every usable entry."""
        for index, record in enumerate(self.accounts):
            if record is not None:
                yield index, record


EMPTY_REGISTRY = RawRegistry()


# =============================================================================
# ACCOUNT STATE TYPES (monitor-owned)
# =============================================================================


@dataclass(frozen=True)
class RateLimitInfo:
    """Rate-limit window for one family of one account."""

    reset_time: int
    time_until_reset: int
    is_expired: bool

    @classmethod
    def at(cls, reset_time: int, now: int) -> "RateLimitInfo":
        return cls(
            reset_time=reset_time,
            time_until_reset=max(0, reset_time - now),
            is_expired=reset_time <= now,
        )

    @property
    def is_limiting(self) -> bool:
        return not self.is_expired

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reset_time": self.reset_time,
            "time_until_reset": self.time_until_reset,
            "is_expired": self.is_expired,
        }


def derive_status(
    claude: Optional[RateLimitInfo], gemini: Optional[RateLimitInfo]
) -> AccountStatus:
    """
    Derive the composite status from the two family rate limits.

    A family is limited when its info is present and not expired.
    Precedence: both -> claude only -> gemini only -> available.
    """
    claude_limited = claude is not None and claude.is_limiting
    gemini_limited = gemini is not None and gemini.is_limiting

    if claude_limited and gemini_limited:
        return AccountStatus.RATE_LIMITED_ALL
    if claude_limited:
        return AccountStatus.RATE_LIMITED_CLAUDE
    if gemini_limited:
        return AccountStatus.RATE_LIMITED_GEMINI
    return AccountStatus.AVAILABLE


@dataclass(frozen=True)
class AccountState:
    """
    Normalized per-account state.

    Equality is value-based across every field, including the nested
    rate-limit infos. ``status`` is a read-only property so it can only
    ever reflect the two rate-limit infos it is derived from.
    """

    email: str
    project_id: Optional[str] = None
    managed_project_id: Optional[str] = None
    added_at: int = 0
    last_used: int = 0
    is_active: bool = False
    active_for_claude: bool = False
    active_for_gemini: bool = False
    claude_rate_limit: Optional[RateLimitInfo] = None
    gemini_rate_limit: Optional[RateLimitInfo] = None

    @property
    def status(self) -> AccountStatus:
        return derive_status(self.claude_rate_limit, self.gemini_rate_limit)

    def rate_limit(self, family: ModelFamily) -> Optional[RateLimitInfo]:
        if family is ModelFamily.CLAUDE:
            return self.claude_rate_limit
        return self.gemini_rate_limit

    def is_active_for(self, family: ModelFamily) -> bool:
        if family is ModelFamily.CLAUDE:
            return self.active_for_claude
        return self.active_for_gemini

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "project_id": self.project_id,
            "managed_project_id": self.managed_project_id,
            "added_at": self.added_at,
            "last_used": self.last_used,
            "is_active": self.is_active,
            "active_for_claude": self.active_for_claude,
            "active_for_gemini": self.active_for_gemini,
            "status": self.status.value,
            "rate_limits": {
                family.value: info.to_dict()
                for family, info in (
                    (ModelFamily.CLAUDE, self.claude_rate_limit),
                    (ModelFamily.GEMINI, self.gemini_rate_limit),
                )
                if info is not None
            },
        }


@dataclass
class DashboardStats:
    """Aggregate counts over the current account list."""

    total_accounts: int = 0
    available_accounts: int = 0
    rate_limited_accounts: int = 0
    active_account: Optional[str] = None
    by_status: Dict[str, int] = field(default_factory=dict)
    last_update: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_accounts": self.total_accounts,
            "available_accounts": self.available_accounts,
            "rate_limited_accounts": self.rate_limited_accounts,
            "active_account": self.active_account,
            "by_status": dict(self.by_status),
            "last_update": self.last_update,
        }


# =============================================================================
# QUOTA TYPES (monitor-owned, independent lifecycle)
# =============================================================================


@dataclass(frozen=True)
class QuotaTarget:
    """Credential material the poller needs for one account."""

    email: str
    refresh_token: str
    project_id: Optional[str] = None


@dataclass(frozen=True)
class ModelQuota:
    """Remaining quota for one model of one account."""

    model_name: str
    display_name: str
    remaining_fraction: float
    remaining_percent: int
    reset_time: Optional[str] = None  # ISO-8601 as returned by the API
    reset_time_ms: Optional[int] = None
    family: Optional[ModelFamily] = None  # None = unclassified

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_name": self.model_name,
            "display_name": self.display_name,
            "remaining_fraction": self.remaining_fraction,
            "remaining_percent": self.remaining_percent,
            "reset_time": self.reset_time,
            "reset_time_ms": self.reset_time_ms,
            "family": self.family.value if self.family else None,
        }


@dataclass(frozen=True)
class QuotaRecord:
    """
    Cached quota information for one account.

    Replaced wholesale on every successful fetch. On failure the previous
    record survives with only ``fetch_error`` replaced.
    """

    email: str
    project_id: Optional[str] = None
    last_fetched: int = 0
    fetch_error: Optional[str] = None
    models: Tuple[ModelQuota, ...] = ()
    claude_quota_percent: Optional[int] = None
    claude_reset_time: Optional[int] = None
    gemini_quota_percent: Optional[int] = None
    gemini_reset_time: Optional[int] = None

    def models_for(self, family: Optional[ModelFamily]) -> List[ModelQuota]:
        return [m for m in self.models if m.family == family]

    @property
    def claude_models(self) -> List[ModelQuota]:
        return self.models_for(ModelFamily.CLAUDE)

    @property
    def gemini_models(self) -> List[ModelQuota]:
        return self.models_for(ModelFamily.GEMINI)

    @property
    def unclassified_models(self) -> List[ModelQuota]:
        return self.models_for(None)

    def family_quota(
        self, family: ModelFamily
    ) -> Tuple[Optional[int], Optional[int]]:
        """Effective (percent, reset_time_ms) for a family."""
        if family is ModelFamily.CLAUDE:
            return self.claude_quota_percent, self.claude_reset_time
        return self.gemini_quota_percent, self.gemini_reset_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "project_id": self.project_id,
            "last_fetched": self.last_fetched,
            "fetch_error": self.fetch_error,
            "models": [m.to_dict() for m in self.models],
            "claude_models": [m.model_name for m in self.claude_models],
            "gemini_models": [m.model_name for m in self.gemini_models],
            "unclassified_models": [m.model_name for m in self.unclassified_models],
            "claude_quota_percent": self.claude_quota_percent,
            "claude_reset_time": self.claude_reset_time,
            "gemini_quota_percent": self.gemini_quota_percent,
            "gemini_reset_time": self.gemini_reset_time,
        }
