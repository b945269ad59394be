# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
OAuth access-token cache for quota polling.

Accounts carry long-lived refresh tokens. Quota calls need a short-lived
access token, obtained by a refresh_token grant against the token endpoint
and cached per refresh token until shortly before it expires.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import httpx

from ..core.constants import (
    DEFAULT_CLIENT_ID,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    TOKEN_ENDPOINT,
    TOKEN_EXPIRY_MARGIN_MS,
)
from ..core.errors import TokenRefreshError, mask_credential

lib_logger = logging.getLogger("monitor_library")


@dataclass
class CachedToken:
    access_token: str
    expires_at: int  # epoch ms


class TokenManager:
    """
    Exchanges refresh tokens for access tokens, with caching.

    Example:
        tokens = TokenManager(client_id, client_secret)
        async with httpx.AsyncClient() as client:
            access_token = await tokens.get_access_token(client, refresh_token)
    """

    def __init__(
        self,
        client_id: str = DEFAULT_CLIENT_ID,
        client_secret: str = "",
        token_endpoint: str = TOKEN_ENDPOINT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_endpoint = token_endpoint
        self._timeout = timeout
        self._cache: Dict[str, CachedToken] = {}

    def get_cached(self, refresh_token: str, now: Optional[int] = None) -> Optional[str]:
        """Return a cached access token that is still comfortably valid."""
        cached = self._cache.get(refresh_token)
        if cached is None:
            return None
        if now is None:
            now = int(time.time() * 1000)
        if cached.expires_at > now + TOKEN_EXPIRY_MARGIN_MS:
            return cached.access_token
        return None

    def invalidate(self, refresh_token: str) -> None:
        self._cache.pop(refresh_token, None)

    def prune(self, keep: Iterable[str]) -> None:
        """Forget cached tokens whose refresh token is not in ``keep``."""
        keep = set(keep)
        for refresh_token in list(self._cache):
            if refresh_token not in keep:
                del self._cache[refresh_token]

    async def get_access_token(
        self, client: httpx.AsyncClient, refresh_token: str
    ) -> str:
        """
        Return an access token for ``refresh_token``.

        Reuses the cached token while its expiry is more than 60s away,
        otherwise performs a refresh_token grant.

        Raises:
            TokenRefreshError: If the exchange fails for any reason
        """
        cached = self.get_cached(refresh_token)
        if cached:
            return cached

        masked = mask_credential(refresh_token)
        try:
            response = await client.post(
                self._token_endpoint,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            lib_logger.warning(f"Token refresh for {masked} timed out")
            raise TokenRefreshError("Token refresh timed out") from e
        except httpx.RequestError as e:
            lib_logger.warning(f"Token refresh for {masked} failed: {e}")
            raise TokenRefreshError(f"Token refresh failed: {e}") from e

        if response.status_code != 200:
            lib_logger.warning(
                f"Token refresh for {masked} returned HTTP {response.status_code}: "
                f"{response.text[:200]}"
            )
            raise TokenRefreshError(
                "Failed to refresh access token", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TokenRefreshError("Token endpoint returned invalid JSON") from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise TokenRefreshError("Token endpoint response has no access_token")

        expires_in = data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_LIFETIME_SECONDS

        self._cache[refresh_token] = CachedToken(
            access_token=access_token,
            expires_at=int(time.time() * 1000) + expires_in * 1000,
        )
        lib_logger.debug(f"Refreshed access token for {masked} ({expires_in}s)")
        return access_token
