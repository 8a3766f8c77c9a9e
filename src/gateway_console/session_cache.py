from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from gateway_console.gateway.client import GatewayClient
from gateway_console.gateway.errors import GatewayError
from gateway_console.gateway.models import Session

CACHE_TTL_SECONDS = 30.0


@dataclass(frozen=True)
class SessionCacheEntry:
    snapshot: tuple[Session, ...]
    fetched_at: float


@dataclass(frozen=True)
class SessionListing:
    """What a cache read produced.

    ``sessions`` may be stale when ``error`` is set: a failed refresh keeps
    the previous snapshot available.
    """

    sessions: tuple[Session, ...]
    error: GatewayError | None = None
    from_cache: bool = False
    fetched_at: float | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SessionCache:
    def __init__(
        self,
        client: GatewayClient,
        *,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        message_limit: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._message_limit = message_limit
        self._clock = clock
        self._entry: SessionCacheEntry | None = None
        self._invalidated = False

    @property
    def entry(self) -> SessionCacheEntry | None:
        return self._entry

    def invalidate(self) -> None:
        """Force the next read to hit the gateway. Does not refetch by itself."""
        self._invalidated = True

    def _is_fresh(self, now: float) -> bool:
        return (
            self._entry is not None
            and not self._invalidated
            and now - self._entry.fetched_at < self._ttl_seconds
        )

    async def get(self, force_refresh: bool = False) -> SessionListing:
        if not force_refresh and self._is_fresh(self._clock()):
            entry = self._entry
            logger.debug(f"Session list served from cache ({len(entry.snapshot)} sessions)")
            return SessionListing(entry.snapshot, from_cache=True, fetched_at=entry.fetched_at)

        result = await self._client.list_sessions(self._message_limit)
        if result.ok:
            entry = SessionCacheEntry(snapshot=result.value, fetched_at=self._clock())
            self._entry = entry
            self._invalidated = False
            return SessionListing(entry.snapshot, fetched_at=entry.fetched_at)

        logger.warning(f"Session list refresh failed: {result.error.message}")
        if self._entry is None:
            return SessionListing((), error=result.error)
        return SessionListing(
            self._entry.snapshot,
            error=result.error,
            from_cache=True,
            fetched_at=self._entry.fetched_at,
        )
