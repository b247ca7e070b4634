"""
Access-token cache owned by a single collaborator instance.

Storage-provider clients (Dropbox, mail gateways) exchange a refresh token
for a short-lived access token. Each client owns one :class:`TokenCache`;
there is no process-wide singleton.

Examples:
    >>> cache = TokenCache(refresh_skew_seconds=60)
    >>> async def fetch():
    ...     return "sl.abc", 14400
    >>> token = await cache.get(fetch)

Tags:
    cache, ttl, credentials, studio-jobs
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from studio_jobs.core.timestamps import Clock, utc_now

TokenFetcher = Callable[[], Awaitable[tuple[str, float]]]


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: datetime


class TokenCache:
    """Caches one access token until shortly before it expires.

    Args:
        refresh_skew_seconds: Treat the token as expired this many seconds
            early so in-flight requests never carry a stale token.
        clock: Time source (tests pass a fake).
    """

    def __init__(self, refresh_skew_seconds: float = 60.0, clock: Clock = utc_now) -> None:
        self._skew = timedelta(seconds=refresh_skew_seconds)
        self._clock = clock
        self._token: CachedToken | None = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> CachedToken | None:
        return self._token

    def is_valid(self) -> bool:
        return self._token is not None and self._clock() + self._skew < self._token.expires_at

    async def get(self, fetch: TokenFetcher) -> str:
        """Return the cached token, refreshing through *fetch* when stale."""
        if self.is_valid():
            assert self._token is not None
            return self._token.value

        async with self._lock:
            # Another task may have refreshed while we waited
            if self.is_valid():
                assert self._token is not None
                return self._token.value

            value, expires_in = await fetch()
            self._token = CachedToken(value=value, expires_at=self._clock() + timedelta(seconds=expires_in))
            return value

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after the provider returns 401)."""
        self._token = None
