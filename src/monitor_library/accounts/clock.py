# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Status clock.

Rate limits expire with the passage of time, not with registry writes.
The clock periodically re-evaluates every account's timers against "now"
so expiries are noticed even when the registry never changes again.
"""

import asyncio
import dataclasses
import logging
import time
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..core.constants import DEFAULT_STATUS_CLOCK_INTERVAL
from ..core.types import AccountState, ModelFamily, RateLimitInfo

if TYPE_CHECKING:
    from .store import AccountStore, TickResult

lib_logger = logging.getLogger("monitor_library")


def advance_rate_limit(
    info: Optional[RateLimitInfo], now: int
) -> Optional[RateLimitInfo]:
    """
    Recompute a rate-limit info at ``now``.

    Expiry is sticky: once expired, an info stays expired until a new
    reset time arrives from the registry, even if the wall clock steps back.
    """
    if info is None:
        return None
    if info.is_expired:
        return RateLimitInfo(info.reset_time, 0, True)
    return RateLimitInfo.at(info.reset_time, now)


def advance_account(
    account: AccountState, now: int
) -> Tuple[AccountState, List[ModelFamily]]:
    """
    Advance both rate-limit timers of an account.

    Returns:
        (new_state, families that flipped from limited to expired)
    """
    claude = advance_rate_limit(account.claude_rate_limit, now)
    gemini = advance_rate_limit(account.gemini_rate_limit, now)

    cleared: List[ModelFamily] = []
    for family, before, after in (
        (ModelFamily.CLAUDE, account.claude_rate_limit, claude),
        (ModelFamily.GEMINI, account.gemini_rate_limit, gemini),
    ):
        if before is not None and after is not None:
            if not before.is_expired and after.is_expired:
                cleared.append(family)

    updated = dataclasses.replace(
        account, claude_rate_limit=claude, gemini_rate_limit=gemini
    )
    return updated, cleared


class StatusClock:
    """
    Periodic driver for AccountStore.advance_timers().

    Example:
        clock = StatusClock(store, interval=15)
        await clock.start()
        ...
        await clock.stop()
    """

    def __init__(
        self, store: "AccountStore", interval: float = DEFAULT_STATUS_CLOCK_INTERVAL
    ):
        self._store = store
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def interval(self) -> float:
        return self._interval

    async def tick(self, now: Optional[int] = None) -> "TickResult":
        """Run one evaluation immediately."""
        if now is None:
            now = int(time.time() * 1000)
        return await self._store.advance_timers(now)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                result = await self.tick()
                if result.cleared:
                    lib_logger.info(
                        "Rate limits cleared: "
                        + ", ".join(f"{e.email} ({e.family.value})" for e in result.cleared)
                    )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                lib_logger.error(f"Status clock tick failed: {type(e).__name__}: {e}")

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            lib_logger.debug(f"Status clock started, interval {self._interval}s")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
