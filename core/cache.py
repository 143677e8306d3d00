"""
Short-TTL response cache for expensive router reads.

Each key has its own TTL. Concurrent misses on one key share a single fetch,
so a burst of pollers costs one router round trip per TTL window.
A fetch that was in flight when its key was cleared still answers its own
callers but never repopulates the cache.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

log = logging.getLogger("ResponseCache")

T = TypeVar("T")


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float

    def fresh(self, now: float) -> bool:
        return now - self.timestamp < self.ttl


class ResponseCache:

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self.hits = 0
        self.misses = 0

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float,
    ) -> T:
        entry = self._entries.get(key)
        if entry is not None and entry.fresh(self._clock()):
            self.hits += 1
            log.debug(f"Cache HIT for {key} (hits: {self.hits}, misses: {self.misses})")
            return entry.data

        task = self._inflight.get(key)
        if task is None:
            self.misses += 1
            log.debug(f"Cache MISS for {key} (hits: {self.hits}, misses: {self.misses})")
            task = asyncio.ensure_future(self._fetch(key, fetcher, ttl))
            self._inflight[key] = task
        else:
            log.debug(f"Cache JOIN for {key}: fetch already in flight")

        return await asyncio.shield(task)

    async def _fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float,
    ) -> T:
        try:
            data = await fetcher()
            # Only the fetch still registered for the key may store its result.
            if self._inflight.get(key) is asyncio.current_task():
                self._entries[key] = CacheEntry(data=data, timestamp=self._clock(), ttl=ttl)
            return data
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    def get(self, key: str) -> Optional[Any]:
        """Fresh cached value or None, without fetching."""
        entry = self._entries.get(key)
        if entry is not None and entry.fresh(self._clock()):
            return entry.data
        return None

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        self._inflight.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
