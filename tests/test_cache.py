"""Tests for the TTL response cache and its single-flight read-through."""

import asyncio

import pytest

from cache import ResponseCache, make_key
from errors import ProviderUnavailable


def test_make_key_normalizes_string_arguments() -> None:
    assert make_key("search", "animesama", "  Naruto ") == ("search", "animesama", "naruto")
    assert make_key("episodes", "animesama", "one-piece", 1, "VF") == ("episodes", "animesama", "one-piece", 1, "vf")


def test_entries_expire_after_their_category_ttl(clock) -> None:
    cache = ResponseCache(ttls={"search": 120, "title": 600}, clock=clock)
    cache.set("k1", ["naruto"], "search")
    cache.set("k2", "one-piece", "title")

    clock.advance(119)
    assert cache.get("k1") == ["naruto"]

    clock.advance(2)
    assert cache.get("k1") is None
    assert cache.get("k2") == "one-piece"


def test_expired_entries_stay_readable_as_stale(clock) -> None:
    cache = ResponseCache(ttls={"search": 10}, clock=clock)
    cache.set("k", "last known", "search")
    clock.advance(3600)

    assert cache.get("k") is None
    assert cache.get_stale("k") == "last known"
    assert cache.get_stale("missing") is None


def test_oldest_entry_is_evicted_when_full(clock) -> None:
    cache = ResponseCache(max_size=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)

    assert len(cache) == 2
    assert cache.get_stale("a") is None
    assert cache.get("c") == 3


def test_invalidate_by_operation_prefix(clock) -> None:
    cache = ResponseCache(clock=clock)
    cache.set(make_key("search", "p", "naruto"), [], "search")
    cache.set(make_key("title", "p", "naruto"), "t", "title")

    cache.invalidate("search")

    assert cache.get(make_key("search", "p", "naruto")) is None
    assert cache.get(make_key("title", "p", "naruto")) == "t"


def test_concurrent_misses_share_one_fetch(clock) -> None:
    cache = ResponseCache(clock=clock)
    calls = []

    async def fetch():
        calls.append(1)
        await asyncio.sleep(0.01)
        return ["one-piece"]

    async def main():
        return await asyncio.gather(*(cache.get_or_fetch("k", fetch, "search") for _ in range(5)))

    results = asyncio.run(main())

    assert calls == [1]
    assert results == [["one-piece"]] * 5
    assert cache.get("k") == ["one-piece"]


def test_fresh_hit_skips_the_fetch(clock) -> None:
    cache = ResponseCache(clock=clock)
    cache.set("k", "cached", "title")

    async def fetch():
        raise AssertionError("should not be called")

    assert asyncio.run(cache.get_or_fetch("k", fetch, "title")) == "cached"


def test_failed_fetch_is_not_cached_and_reaches_every_waiter(clock) -> None:
    cache = ResponseCache(clock=clock)
    calls = []

    async def fetch():
        calls.append(1)
        await asyncio.sleep(0)
        raise ProviderUnavailable("down", provider="animesama")

    async def main():
        return await asyncio.gather(
            cache.get_or_fetch("k", fetch, "search"),
            cache.get_or_fetch("k", fetch, "search"),
            return_exceptions=True,
        )

    results = asyncio.run(main())

    assert calls == [1]
    assert all(isinstance(r, ProviderUnavailable) for r in results)
    assert cache.get_stale("k") is None

    async def ok():
        return "back"

    assert asyncio.run(cache.get_or_fetch("k", ok, "search")) == "back"


def test_fetch_is_cancelled_when_every_waiter_leaves(clock) -> None:
    cache = ResponseCache(clock=clock)
    fetch_cancelled = []

    async def fetch():
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            fetch_cancelled.append(True)
            raise

    async def main():
        waiter = asyncio.ensure_future(cache.get_or_fetch("k", fetch, "sources"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        for _ in range(3):
            await asyncio.sleep(0)

    asyncio.run(main())

    assert fetch_cancelled == [True]
    assert cache.get_stale("k") is None


def test_remaining_waiter_still_gets_the_result(clock) -> None:
    cache = ResponseCache(clock=clock)
    release = []

    async def fetch():
        while not release:
            await asyncio.sleep(0)
        return "servers"

    async def main():
        first = asyncio.ensure_future(cache.get_or_fetch("k", fetch, "sources"))
        second = asyncio.ensure_future(cache.get_or_fetch("k", fetch, "sources"))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0)
        release.append(True)
        return await second

    assert asyncio.run(main()) == "servers"
    assert cache.get("k") == "servers"


def test_none_results_are_not_cached(clock) -> None:
    cache = ResponseCache(clock=clock)

    async def fetch():
        return None

    assert asyncio.run(cache.get_or_fetch("k", fetch)) is None
    assert cache.get_stale("k") is None
