"""Tests for the TTL response cache."""

import asyncio

import pytest

from core.cache import CacheEntry, ResponseCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(clock=clock)


def counting_fetcher(value="data", delay: float = 0.0):
    calls = []

    async def fetch():
        calls.append(1)
        if delay:
            await asyncio.sleep(delay)
        return value

    return fetch, calls


class TestCacheEntry:
    def test_fresh_until_ttl(self) -> None:
        entry = CacheEntry(data="x", timestamp=100.0, ttl=5.0)

        assert entry.fresh(104.9)
        assert not entry.fresh(105.0)


class TestGetOrFetch:
    """Tests for ResponseCache.get_or_fetch()."""

    @pytest.mark.asyncio
    async def test_hit_within_ttl(self, cache: ResponseCache, clock: FakeClock) -> None:
        fetch, calls = counting_fetcher()

        assert await cache.get_or_fetch("status", fetch, 3) == "data"
        clock.now += 2.9
        assert await cache.get_or_fetch("status", fetch, 3) == "data"

        assert len(calls) == 1
        assert cache.hits == 1
        assert cache.misses == 1

    @pytest.mark.asyncio
    async def test_refetch_after_expiry(self, cache: ResponseCache, clock: FakeClock) -> None:
        fetch, calls = counting_fetcher()

        await cache.get_or_fetch("status", fetch, 3)
        clock.now += 3
        await cache.get_or_fetch("status", fetch, 3)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_keys_have_their_own_ttl(self, cache: ResponseCache, clock: FakeClock) -> None:
        fetch, _ = counting_fetcher()
        await cache.get_or_fetch("identity", fetch, 30)
        await cache.get_or_fetch("status", fetch, 3)

        clock.now += 10

        assert "identity" in cache
        assert "status" not in cache

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(self, cache: ResponseCache) -> None:
        fetch, calls = counting_fetcher(delay=0.01)

        results = await asyncio.gather(*(cache.get_or_fetch("k", fetch, 5) for _ in range(5)))

        assert results == ["data"] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_errors_are_not_cached(self, cache: ResponseCache) -> None:
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("router busy")
            return "ok"

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch("k", flaky, 5)
        assert await cache.get_or_fetch("k", flaky, 5) == "ok"

    @pytest.mark.asyncio
    async def test_clear_during_fetch_does_not_store(self, cache: ResponseCache) -> None:
        """A fetch that started before clear() still answers but is not kept."""
        fetch, _ = counting_fetcher(delay=0.02)

        pending = asyncio.create_task(cache.get_or_fetch("k", fetch, 60))
        await asyncio.sleep(0.005)
        cache.clear()

        assert await pending == "data"
        assert "k" not in cache

    @pytest.mark.asyncio
    async def test_invalidate_during_fetch_does_not_store(self, cache: ResponseCache) -> None:
        fetch, _ = counting_fetcher(delay=0.02)

        pending = asyncio.create_task(cache.get_or_fetch("k", fetch, 60))
        await asyncio.sleep(0.005)
        cache.invalidate("k")

        await pending
        assert "k" not in cache

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_fetch(self, cache: ResponseCache) -> None:
        fetch, calls = counting_fetcher(delay=0.02)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(cache.get_or_fetch("k", fetch, 60), 0.005)
        await asyncio.sleep(0.03)

        assert cache.get("k") == "data"
        assert len(calls) == 1


class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_get_without_fetch(self, cache: ResponseCache, clock: FakeClock) -> None:
        fetch, _ = counting_fetcher()
        assert cache.get("k") is None

        await cache.get_or_fetch("k", fetch, 1)
        assert cache.get("k") == "data"

        clock.now += 1
        assert cache.get("k") is None

    @pytest.mark.asyncio
    async def test_len_and_clear(self, cache: ResponseCache) -> None:
        fetch, _ = counting_fetcher()
        await cache.get_or_fetch("a", fetch, 5)
        await cache.get_or_fetch("b", fetch, 5)

        assert len(cache) == 2
        cache.clear()
        assert len(cache) == 0
