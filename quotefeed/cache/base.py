"""
Shared read-through logic for the feed caches.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Tuple

from quotefeed.cache.single_flight import SingleFlight
from quotefeed.cache.store import CacheEntry, CacheStore
from quotefeed.utils.logger import get_logger

logger = get_logger("cache")

Builder = Callable[[], Awaitable[Tuple[Any, Optional[int]]]]


class TimedCache:
    """
    A namespace of TTL-bound entries inside a CacheStore.

    On a miss the builder runs and its result replaces the entry. If the
    builder raises, nothing is written. Each invalidation bumps a generation
    counter; a rebuild that started before an invalidation still answers its
    own caller but does not write its (possibly stale) result.
    """

    namespace = ""

    def __init__(self, store: CacheStore, ttl_seconds: float, coalesce_rebuilds: bool = False):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.rebuild_count = 0
        self._generation = 0
        self._flight = SingleFlight() if coalesce_rebuilds else None

    def _key(self, suffix: str = "") -> str:
        return f"{self.namespace}:{suffix}" if suffix else self.namespace

    async def _get_or_build(self, key: str, build: Builder) -> CacheEntry:
        entry = await self.store.get(key, self.ttl_seconds)
        if entry is not None:
            logger.debug(f"Cache hit: {key}")
            return entry
        if self._flight is None:
            return await self._rebuild(key, build)
        return await self._flight.do(f"{self._generation}:{key}", lambda: self._rebuild(key, build))

    async def _rebuild(self, key: str, build: Builder) -> CacheEntry:
        generation = self._generation
        t0 = time.perf_counter()
        logger.info(f"Rebuilding {key}")
        payload, total = await build()
        self.rebuild_count += 1
        entry = self.store.make_entry(payload, total)
        duration_ms = round((time.perf_counter() - t0) * 1000, 1)
        if generation != self._generation:
            logger.info(f"Rebuilt {key} in {duration_ms}ms but it was invalidated meanwhile; not storing")
            return entry
        await self.store.set(key, entry, self.ttl_seconds)
        logger.info(f"Rebuilt {key} in {duration_ms}ms (total={total})")
        return entry

    def _bump_generation(self) -> None:
        self._generation += 1


async def gather_strict(*aws):
    """
    Await all awaitables concurrently and return their results in order.

    Unlike a bare asyncio.gather, every call is allowed to finish before the
    first failure is raised, so no sibling is left running unobserved.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results
