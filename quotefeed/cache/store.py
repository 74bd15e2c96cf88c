"""
Cache store abstraction shared by every feed cache.

A CacheStore holds CacheEntry objects under string keys. Entries are
replaced wholesale on rebuild and removed wholesale on invalidation; a
stored entry is never mutated.

Backends:
- InMemoryCacheStore  process-local dict (default)
- RedisCacheStore     shared across instances via redis.asyncio
"""
from __future__ import annotations

import abc
import math
import pickle
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis.asyncio as aioredis

from quotefeed.cache.policy import REDIS_EXPIRY_GRACE_SECONDS
from quotefeed.utils.logger import get_logger

logger = get_logger("cache.store")


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload, when it was built, and (for pools) its item count."""
    payload: Any
    created_at: float
    total: Optional[int] = None

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at < ttl_seconds


class CacheStore(abc.ABC):
    """Async key/value store for CacheEntry objects with hit/miss statistics."""

    backend = "abstract"

    def __init__(self, clock: Callable[[], float]):
        self._clock = clock
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "evictions": 0,
            "errors": 0,
        }

    def now(self) -> float:
        return self._clock()

    def make_entry(self, payload: Any, total: Optional[int] = None) -> CacheEntry:
        return CacheEntry(payload=payload, created_at=self.now(), total=total)

    def stats(self) -> Dict[str, Any]:
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            "backend": self.backend,
            **self._stats,
            "hit_rate": round(self._stats["hits"] / lookups, 4) if lookups else 0.0,
        }

    @abc.abstractmethod
    async def get(self, key: str, ttl_seconds: float) -> Optional[CacheEntry]:
        """Return the entry if it is younger than ttl_seconds, else None (evicting it)."""

    @abc.abstractmethod
    async def set(self, key: str, entry: CacheEntry, ttl_seconds: float) -> None:
        """Store entry under key, replacing whatever was there."""

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove one key. Returns True if something was removed."""

    @abc.abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix. Returns count removed."""

    @abc.abstractmethod
    async def clear(self) -> None:
        """Remove everything."""

    async def close(self) -> None:
        return None


class InMemoryCacheStore(CacheStore):
    """Process-local store. Not shared between workers or instances."""

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        super().__init__(clock)
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, key: str, ttl_seconds: float) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None
        if not entry.is_fresh(self.now(), ttl_seconds):
            del self._entries[key]
            self._stats["evictions"] += 1
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry

    async def set(self, key: str, entry: CacheEntry, ttl_seconds: float) -> None:
        self._entries[key] = entry
        self._stats["sets"] += 1

    async def delete(self, key: str) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            self._stats["deletes"] += 1
        return removed

    async def delete_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        self._stats["deletes"] += len(keys)
        return len(keys)

    async def clear(self) -> None:
        self._stats["deletes"] += len(self._entries)
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self):
        return list(self._entries)


class RedisCacheStore(CacheStore):
    """
    Redis-backed store shared by every instance pointing at the same server.

    Entries are pickled whole. Keys carry a redis expiry a little longer than
    the logical TTL; freshness is judged from the entry timestamp (wall
    clock, comparable across hosts). Redis errors are counted and re-raised.
    """

    backend = "redis"

    def __init__(self, client: aioredis.Redis, namespace: str = "quotefeed",
                 clock: Callable[[], float] = time.time):
        super().__init__(clock)
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, redis_url: str, namespace: str = "quotefeed") -> "RedisCacheStore":
        client = aioredis.from_url(
            redis_url,
            decode_responses=False,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, namespace=namespace)

    def _key(self, key: str) -> str:
        """Prefix key with namespace."""
        return f"{self.namespace}:{key}"

    async def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(await self.client.ping())
        except Exception:
            return False

    async def get(self, key: str, ttl_seconds: float) -> Optional[CacheEntry]:
        try:
            raw = await self.client.get(self._key(key))
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Cache read error for {key}: {e}")
            raise
        if raw is None:
            self._stats["misses"] += 1
            return None
        entry: CacheEntry = pickle.loads(raw)
        if not entry.is_fresh(self.now(), ttl_seconds):
            await self.delete(key)
            self._stats["evictions"] += 1
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry

    async def set(self, key: str, entry: CacheEntry, ttl_seconds: float) -> None:
        expiry = int(math.ceil(ttl_seconds)) + REDIS_EXPIRY_GRACE_SECONDS
        try:
            await self.client.setex(self._key(key), expiry, pickle.dumps(entry))
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Cache write error for {key}: {e}")
            raise
        self._stats["sets"] += 1

    async def delete(self, key: str) -> bool:
        try:
            removed = await self.client.delete(self._key(key))
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Cache delete error for {key}: {e}")
            raise
        self._stats["deletes"] += removed
        return removed > 0

    async def delete_prefix(self, prefix: str) -> int:
        try:
            keys = [k async for k in self.client.scan_iter(match=self._key(prefix) + "*", count=100)]
            removed = await self.client.delete(*keys) if keys else 0
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Cache prefix invalidation error for {prefix}: {e}")
            raise
        self._stats["deletes"] += removed
        return removed

    async def clear(self) -> None:
        await self.delete_prefix("")

    async def close(self) -> None:
        await self.client.aclose()


def create_cache_store(backend: str, redis_url: Optional[str] = None) -> CacheStore:
    """Build the configured cache backend."""
    if backend == "redis":
        if not redis_url:
            raise ValueError("redis cache backend requires a redis_url")
        logger.info("Using redis cache store (entries shared across instances)")
        return RedisCacheStore.from_url(redis_url)
    if backend != "memory":
        raise ValueError(f"Unknown cache backend: {backend!r}")
    logger.info("Using in-memory cache store (process-local)")
    return InMemoryCacheStore()
