# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Pure transform from a raw registry snapshot to normalized account state.
"""

from typing import List, Optional

from ..core.types import (
    AccountState,
    ModelFamily,
    RateLimitInfo,
    RawAccountRecord,
    RawRegistry,
    derive_status,
)

__all__ = ["build_account_state", "build_account_states", "derive_status"]


def _rate_limit_info(reset_time: Optional[int], now: int) -> Optional[RateLimitInfo]:
    # Absent or zero reset times mean "never limited"
    if not reset_time:
        return None
    return RateLimitInfo.at(reset_time, now)


def build_account_state(
    record: RawAccountRecord, index: int, registry: RawRegistry, now: int
) -> AccountState:
    """Build the state of the record found at ``index`` of ``registry``."""
    resets = record.rate_limit_reset_times
    return AccountState(
        email=record.email,
        project_id=record.project_id,
        managed_project_id=record.managed_project_id,
        added_at=record.added_at,
        last_used=record.last_used,
        is_active=index == registry.active_index,
        active_for_claude=index == registry.active_index_for(ModelFamily.CLAUDE),
        active_for_gemini=index == registry.active_index_for(ModelFamily.GEMINI),
        claude_rate_limit=_rate_limit_info(resets.get(ModelFamily.CLAUDE), now),
        gemini_rate_limit=_rate_limit_info(resets.get(ModelFamily.GEMINI), now),
    )


def build_account_states(
    registry: Optional[RawRegistry], now: int
) -> List[AccountState]:
    """
    Build the ordered account list for a registry snapshot.

    Args:
        registry: Parsed registry, or None for an absent registry
        now: Evaluation time in epoch milliseconds

    Returns:
        One AccountState per usable record, in registry order
    """
    if registry is None:
        return []
    return [
        build_account_state(record, index, registry, now)
        for index, record in registry.iter_records()
    ]
