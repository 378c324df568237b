"""
Simple TTL in-memory cache for provider responses.

Caches normalized results to avoid hitting the providers on every page load.
Each entry expires after a TTL that depends on its category. Expired entries
are not served as fresh data but stay around as "last known" values, which
the aggregator uses to build degraded responses when a provider is down.

`get_or_fetch` adds a single-flight guarantee: concurrent misses on the same
key share one upstream call.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Hashable

from config import settings

logger = logging.getLogger(__name__)

# Default TTLs per category (in seconds)
TTLS = dict(settings.cache_ttls)


def make_key(operation: str, *args: Any) -> tuple:
    """Cache key from an operation name and its arguments, normalized."""
    normalized = []
    for arg in args:
        if isinstance(arg, str):
            arg = arg.strip().lower()
        normalized.append(arg)
    return (operation, *normalized)


class _Flight:
    def __init__(self, task: asyncio.Task):
        self.task = task
        self.waiters = 0


class ResponseCache:
    def __init__(
        self,
        ttls: dict[str, int] | None = None,
        max_size: int = settings.cache_max_size,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttls = dict(TTLS if ttls is None else ttls)
        self.max_size = max_size
        self._clock = clock
        self._store: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._inflight: dict[Hashable, _Flight] = {}

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: Hashable) -> Any | None:
        """Get a cached value if it exists and hasn't expired."""
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() > expires_at:
            return None
        return value

    def get_stale(self, key: Hashable) -> Any | None:
        """Last value written for `key`, expired or not."""
        entry = self._store.get(key)
        return entry[1] if entry is not None else None

    def set(self, key: Hashable, value: Any, category: str = "episodes") -> None:
        """Cache a value with a TTL based on category. Entries are replaced, never mutated."""
        ttl = self.ttls.get(category, 300)
        self._store.pop(key, None)
        while self.max_size and len(self._store) >= self.max_size:
            self._store.popitem(last=False)
        self._store[key] = (self._clock() + ttl, value)

    def invalidate(self, prefix: str) -> None:
        """Remove all entries whose operation name starts with `prefix`."""
        keys = [k for k in self._store if _operation(k).startswith(prefix)]
        for k in keys:
            del self._store[k]

    def clear(self) -> None:
        """Clear the entire cache."""
        self._store.clear()

    async def get_or_fetch(
        self,
        key: Hashable,
        fetch: Callable[[], Awaitable[Any]],
        category: str = "episodes",
    ) -> Any:
        """
        Read-through lookup. On a miss, one fetch runs per key no matter how
        many callers are waiting; they all get its result (or its exception).

        The fetch is cancelled once every waiter has been cancelled, and a
        cancelled or failed fetch never writes to the cache.
        """
        value = self.get(key)
        if value is not None:
            return value

        flight = self._inflight.get(key)
        if flight is None:
            flight = _Flight(asyncio.ensure_future(fetch()))
            self._inflight[key] = flight
            flight.task.add_done_callback(lambda task: self._landed(key, flight, category))
        else:
            logger.debug("Joining in-flight fetch for %s", key)

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                flight.task.cancel()

    def _landed(self, key: Hashable, flight: _Flight, category: str) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]
        task = flight.task
        if task.cancelled() or task.exception() is not None:
            return
        result = task.result()
        if result is not None:
            self.set(key, result, category)


def _operation(key: Hashable) -> str:
    if isinstance(key, tuple) and key:
        return str(key[0])
    return str(key)
