# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Quota poller.

Periodically fetches remaining quota for every account from the quota
provider and keeps a per-account cache.

Per account, one cycle runs three stages:
- Token: cached access token or refresh_token grant (TokenManager)
- Fetch: fetchAvailableModels against each endpoint in preference order,
  first success wins
- Parse/aggregate: per-model entries, family minimum (quota.parser)

A failure in any stage only affects that account for that cycle: the
error is recorded on the cached record and its previous models are kept.
Accounts are processed serially with a small delay between them so the
token and quota endpoints never see a burst.
"""

import asyncio
import dataclasses
import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING

import httpx

from ..core.constants import (
    DEFAULT_ACCOUNT_DELAY_SECONDS,
    DEFAULT_QUOTA_POLL_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    FETCH_MODELS_PATH,
    QUOTA_ENDPOINTS,
    QUOTA_HEADERS,
)
from ..core.errors import MonitorError, QuotaFetchError
from ..core.types import QuotaRecord, QuotaTarget
from ..events.types import QuotaUpdated
from .parser import build_quota_record, parse_quota_response, quota_summary
from .tokens import TokenManager

if TYPE_CHECKING:
    from ..events.broadcaster import ChangeBroadcaster

lib_logger = logging.getLogger("monitor_library")

TargetSource = Callable[[], Sequence[QuotaTarget]]


def _now_ms() -> int:
    return int(time.time() * 1000)


class QuotaPoller:
    """
    Owns the quota cache.

    Example:
        poller = QuotaPoller(store.get_quota_targets, tokens, broadcaster=broadcaster)
        await poller.start()                 # immediate cycle, then every interval
        quotas = await poller.get_quotas()   # cache, or refresh if stale
    """

    def __init__(
        self,
        target_source: TargetSource,
        token_manager: Optional[TokenManager] = None,
        broadcaster: Optional["ChangeBroadcaster"] = None,
        endpoints: Sequence[str] = QUOTA_ENDPOINTS,
        poll_interval: float = DEFAULT_QUOTA_POLL_INTERVAL,
        account_delay: float = DEFAULT_ACCOUNT_DELAY_SECONDS,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the poller.

        Args:
            target_source: Returns the accounts to poll; called at the start
                of every cycle
            token_manager: Access-token cache; a default one is created if None
            broadcaster: Receives a QuotaUpdated event after every cycle
            endpoints: Quota endpoints in preference order
            poll_interval: Seconds between background cycles; also the
                staleness threshold of the cache
            account_delay: Seconds to pause between accounts in one cycle
            request_timeout: Timeout in seconds for each quota call
            http_client: Optional shared client; one is created per cycle
                when not given
        """
        self._target_source = target_source
        self._tokens = token_manager or TokenManager(timeout=request_timeout)
        self._broadcaster = broadcaster
        self._endpoints = tuple(e.rstrip("/") for e in endpoints)
        self._poll_interval = poll_interval
        self._account_delay = account_delay
        self._request_timeout = request_timeout
        self._http_client = http_client

        self._cache: Dict[str, QuotaRecord] = {}
        self._last_full_fetch: int = 0  # start of last successful cycle, ms
        self._inflight: Optional[asyncio.Task] = None
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # STAGES
    # =========================================================================

    async def _fetch_models(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        project_id: Optional[str],
    ) -> Dict[str, Any]:
        """
        Call fetchAvailableModels on each endpoint until one succeeds.

        Raises:
            QuotaFetchError: If every endpoint failed
        """
        body = {"project": project_id} if project_id else {}
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            **QUOTA_HEADERS,
        }

        attempts = 0
        for endpoint in self._endpoints:
            attempts += 1
            url = f"{endpoint}{FETCH_MODELS_PATH}"
            try:
                response = await client.post(
                    url, headers=headers, json=body, timeout=self._request_timeout
                )
            except httpx.TimeoutException:
                lib_logger.warning(f"Quota endpoint {endpoint} timed out")
                continue
            except httpx.RequestError as e:
                lib_logger.warning(f"Quota endpoint {endpoint} failed: {e}")
                continue

            if not response.is_success:
                lib_logger.warning(
                    f"Quota endpoint {endpoint} returned {response.status_code}: "
                    f"{response.text[:200]}"
                )
                continue

            try:
                data = response.json()
            except ValueError:
                lib_logger.warning(f"Quota endpoint {endpoint} returned invalid JSON")
                continue
            return data if isinstance(data, dict) else {}

        raise QuotaFetchError("Failed to fetch models from API", attempts=attempts)

    async def refresh_account(
        self, client: httpx.AsyncClient, target: QuotaTarget
    ) -> QuotaRecord:
        """
        Run all stages for one account and update its cache entry.

        Raises:
            TokenRefreshError: Token stage failed
            QuotaFetchError: Every quota endpoint failed
        """
        access_token = await self._tokens.get_access_token(
            client, target.refresh_token
        )
        data = await self._fetch_models(client, access_token, target.project_id)
        record = build_quota_record(
            email=target.email,
            project_id=target.project_id,
            models=parse_quota_response(data),
            fetched_at=_now_ms(),
        )
        self._cache[target.email] = record
        lib_logger.debug(f"Quota for {target.email}: {quota_summary(record)}")
        return record

    def _record_failure(self, target: QuotaTarget, error: str) -> QuotaRecord:
        previous = self._cache.get(target.email)
        if previous is not None:
            # Stale-but-present: keep the last known models
            record = dataclasses.replace(previous, fetch_error=error)
        else:
            record = QuotaRecord(
                email=target.email,
                project_id=target.project_id,
                last_fetched=_now_ms(),
                fetch_error=error,
            )
        self._cache[target.email] = record
        return record

    # =========================================================================
    # CYCLES
    # =========================================================================

    async def _run_cycle(self, targets: Sequence[QuotaTarget]) -> List[QuotaRecord]:
        started = _now_ms()
        lib_logger.info(f"Fetching quotas for {len(targets)} accounts...")

        results: List[QuotaRecord] = []
        successes = 0

        async def _cycle(client: httpx.AsyncClient) -> None:
            nonlocal successes
            for position, target in enumerate(targets):
                if position > 0 and self._account_delay > 0:
                    await asyncio.sleep(self._account_delay)
                try:
                    results.append(await self.refresh_account(client, target))
                    successes += 1
                except MonitorError as e:
                    lib_logger.warning(f"Quota fetch for {target.email} failed: {e}")
                    results.append(self._record_failure(target, str(e)))
                except Exception as e:
                    lib_logger.error(
                        f"Unexpected error fetching quota for {target.email}: "
                        f"{type(e).__name__}: {e}"
                    )
                    results.append(self._record_failure(target, str(e)))

        if self._http_client is not None:
            await _cycle(self._http_client)
        else:
            async with httpx.AsyncClient(timeout=self._request_timeout) as client:
                await _cycle(client)

        # Drop cache entries for accounts that left the registry
        current = {t.email for t in targets}
        for email in list(self._cache):
            if email not in current:
                del self._cache[email]
        self._tokens.prune(t.refresh_token for t in targets)

        if successes > 0:
            self._last_full_fetch = started

        lib_logger.info(
            f"Fetched quotas for {len(results)} accounts "
            f"({successes} ok, {len(results) - successes} failed)"
        )

        if self._broadcaster is not None:
            self._broadcaster.publish(
                QuotaUpdated(
                    quotas=tuple(self.get_cached_quotas()),
                    cache_age=self.get_cache_age_or_none(),
                    is_stale=self.is_stale(),
                )
            )
        return results

    async def refresh_all(
        self, targets: Optional[Sequence[QuotaTarget]] = None
    ) -> List[QuotaRecord]:
        """
        Run one poll cycle now.

        If a cycle is already running, waits for it and returns its result
        instead of starting an overlapping one.
        """
        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)

        if targets is None:
            targets = list(self._target_source())

        self._inflight = asyncio.create_task(self._run_cycle(targets))
        try:
            return await asyncio.shield(self._inflight)
        finally:
            if self._inflight is not None and self._inflight.done():
                self._inflight = None

    async def force_refresh(self) -> List[QuotaRecord]:
        """On-demand cycle, regardless of cache age."""
        return await self.refresh_all()

    async def get_quotas(self, refresh_if_stale: bool = True) -> List[QuotaRecord]:
        """
        Serve the cache, refreshing synchronously when it is empty or stale.
        """
        quotas = self.get_cached_quotas()
        if refresh_if_stale and (not quotas or self.is_stale()):
            if self._target_source():
                await self.refresh_all()
                quotas = self.get_cached_quotas()
        return quotas

    # =========================================================================
    # CACHE ACCESSORS
    # =========================================================================

    def get_cached_quotas(self) -> List[QuotaRecord]:
        return list(self._cache.values())

    def get_cached_quota(self, email: str) -> Optional[QuotaRecord]:
        return self._cache.get(email)

    def get_cache_age(self) -> float:
        """Milliseconds since the last successful cycle started; inf if none."""
        if self._last_full_fetch == 0:
            return math.inf
        return float(_now_ms() - self._last_full_fetch)

    def get_cache_age_or_none(self) -> Optional[float]:
        """Cache age for JSON payloads, which cannot carry infinity."""
        age = self.get_cache_age()
        return None if math.isinf(age) else age

    def is_stale(self) -> bool:
        return self.get_cache_age() > self._poll_interval * 1000

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _run(self) -> None:
        while True:
            try:
                if self._target_source():
                    await self.refresh_all()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                lib_logger.error(f"Quota poll cycle failed: {type(e).__name__}: {e}")
            await asyncio.sleep(self._poll_interval)

    async def start(self) -> None:
        """Start background polling; the first cycle runs immediately."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            lib_logger.info(f"Started quota polling every {self._poll_interval:g}s")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
            try:
                await self._inflight
            except asyncio.CancelledError:
                pass
        self._inflight = None
