"""
Tests for the response cache, cache keys and request coalescing.
"""
import asyncio

import pytest

from restay.cache import RequestCoalescer, ResponseCache, make_cache_key


# =============================================================================
# ResponseCache
# =============================================================================

def test_get_returns_data_until_expiry(clock):
    cache = ResponseCache(ttl_seconds=300, clock=clock)
    cache.set("/api/rooms", [{"id": 1}])

    clock.advance(299)
    assert cache.get("/api/rooms") == [{"id": 1}]

    # Still valid exactly at the expiry instant
    clock.advance(1)
    assert cache.get("/api/rooms") == [{"id": 1}]


def test_expired_entry_is_evicted_on_read(clock):
    cache = ResponseCache(ttl_seconds=300, clock=clock)
    cache.set("/api/rooms", [1])
    cache.set("/api/students", [2])
    assert cache.get_stats()["size"] == 2

    clock.advance(301)
    cache.set("/api/students", [3])
    assert cache.get("/api/rooms") is None
    assert cache.get_stats()["size"] == 1


def test_entry_timestamps_follow_ttl(clock):
    cache = ResponseCache(ttl_seconds=120, clock=clock)
    entry = cache.set("k", "v")
    assert entry.timestamp == clock.now
    assert entry.expiry == clock.now + 120


def test_falsy_payload_is_still_a_hit(clock):
    cache = ResponseCache(clock=clock)
    cache.set("/api/payments", [])
    entry = cache.get_entry("/api/payments")
    assert entry is not None
    assert entry.data == []
    assert "/api/payments" in cache


def test_set_overwrites_existing_entry(clock):
    cache = ResponseCache(ttl_seconds=60, clock=clock)
    cache.set("k", "old")
    clock.advance(30)
    entry = cache.set("k", "new")
    assert cache.get("k") == "new"
    assert entry.expiry == clock.now + 60


def test_clear_with_pattern_removes_matching_keys_only(clock):
    cache = ResponseCache(clock=clock)
    cache.set("/api/rooms?pg=1", 1)
    cache.set("/api/rooms?pg=2", 2)
    cache.set("/api/students", 3)

    assert cache.clear("rooms") == 2
    assert cache.get("/api/students") == 3
    assert len(cache) == 1


def test_clear_pattern_is_not_a_regex(clock):
    cache = ResponseCache(clock=clock)
    cache.set("/api/rooms", 1)
    assert cache.clear("r.*s") == 0
    assert len(cache) == 1


def test_clear_without_pattern_wipes_everything(clock):
    cache = ResponseCache(clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.clear() == 2
    assert len(cache) == 0


def test_stats_for_empty_cache(clock):
    stats = ResponseCache(clock=clock).get_stats()
    assert stats == {"size": 0, "total_size": 0, "oldest_entry": 0, "newest_entry": 0}


def test_stats_track_oldest_and_newest(clock):
    cache = ResponseCache(clock=clock)
    first = clock.now
    cache.set("a", {"rooms": 3})
    clock.advance(10)
    cache.set("b", {"rooms": 4})

    stats = cache.get_stats()
    assert stats["size"] == 2
    assert stats["oldest_entry"] == first
    assert stats["newest_entry"] == first + 10
    assert stats["total_size"] > 0


# =============================================================================
# Cache keys
# =============================================================================

def test_cache_key_ignores_param_order():
    assert make_cache_key("/api/rooms", {"pg": 1, "floor": 2}) == make_cache_key(
        "/api/rooms", {"floor": 2, "pg": 1}
    )


def test_cache_key_differs_by_params():
    assert make_cache_key("/api/rooms", {"pg": 1}) != make_cache_key("/api/rooms", {"pg": 2})


def test_cache_key_without_params_is_base():
    assert make_cache_key("/api/rooms") == "/api/rooms"
    assert make_cache_key("/api/rooms", {}) == "/api/rooms"


# =============================================================================
# RequestCoalescer
# =============================================================================

def test_concurrent_calls_share_one_fetch():
    calls = []

    async def scenario():
        coalescer = RequestCoalescer()
        release = asyncio.Event()

        async def fetch():
            calls.append(1)
            await release.wait()
            return {"rooms": 12}

        first = asyncio.create_task(coalescer.get_or_fetch("rooms", fetch))
        second = asyncio.create_task(coalescer.get_or_fetch("rooms", fetch))
        await asyncio.sleep(0)
        assert coalescer.is_in_flight("rooms")
        release.set()
        results = await asyncio.gather(first, second)
        return coalescer, results

    coalescer, results = asyncio.run(scenario())
    assert len(calls) == 1
    assert results[0] == results[1] == {"rooms": 12}
    assert coalescer.active_requests == 0


def test_failure_reaches_every_waiter_and_releases_key():
    async def scenario():
        coalescer = RequestCoalescer()
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            raise ValueError("upstream down")

        tasks = [
            asyncio.create_task(coalescer.get_or_fetch("rooms", fetch))
            for _ in range(3)
        ]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        return coalescer, results

    coalescer, results = asyncio.run(scenario())
    assert all(isinstance(r, ValueError) for r in results)
    assert coalescer.active_requests == 0


def test_sequential_calls_fetch_again():
    calls = []

    async def fetch():
        calls.append(1)
        return len(calls)

    async def scenario():
        coalescer = RequestCoalescer()
        return [await coalescer.get_or_fetch("k", fetch), await coalescer.get_or_fetch("k", fetch)]

    assert asyncio.run(scenario()) == [1, 2]


def test_waiter_timeout():
    async def scenario():
        coalescer = RequestCoalescer(timeout=0.01)
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            return "late"

        initiator = asyncio.create_task(coalescer.get_or_fetch("k", fetch))
        await asyncio.sleep(0)
        with pytest.raises(asyncio.TimeoutError):
            await coalescer.get_or_fetch("k", fetch)
        release.set()
        return await initiator

    assert asyncio.run(scenario()) == "late"
