"""
In-memory caching for resolved airports and timezones.

``TTLCache`` expires entries a fixed time after insertion and keeps at most
``maxsize`` entries, evicting expired entries first and then the oldest
insertion. ``CacheAside`` puts it in front of an async loader.
"""

import asyncio
import functools
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    inserted_at: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    maxsize: int
    hits: int
    misses: int
    evictions: int


class TTLCache(Generic[V]):
    """Thread-safe TTL cache; an overwrite replaces the entry and restarts its TTL."""

    def __init__(
        self,
        *,
        ttl_seconds: float,
        maxsize: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.maxsize = maxsize
        self._clock = clock
        self._lock = threading.Lock()
        self._data: "OrderedDict[Hashable, _Entry[V]]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _expired(self, entry: _Entry[V], now: float) -> bool:
        return now - entry.inserted_at >= self.ttl_seconds

    def get(self, key: Hashable) -> Optional[V]:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._expired(entry, now):
                del self._data[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: V) -> None:
        now = self._clock()
        with self._lock:
            self._data.pop(key, None)
            if len(self._data) >= self.maxsize:
                self._evict_locked(now)
            self._data[key] = _Entry(value=value, inserted_at=now)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._data),
                maxsize=self.maxsize,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            return entry is not None and not self._expired(entry, now)

    def _evict_locked(self, now: float) -> None:
        expired_keys = [k for k, entry in self._data.items() if self._expired(entry, now)]
        for k in expired_keys:
            del self._data[k]
        self._evictions += len(expired_keys)
        while len(self._data) >= self.maxsize:
            self._data.popitem(last=False)
            self._evictions += 1


class CacheAside(Generic[V]):
    """Cache-aside lookup over a ``TTLCache``.

    Failed loads are never stored. Without ``single_flight`` concurrent misses
    for the same key each run their own loader; with it, the first miss starts
    the load as its own task and every caller, the first included, awaits that
    task. A caller that is cancelled stops waiting but leaves the load running
    for the others.
    """

    def __init__(self, cache: TTLCache[V], *, single_flight: bool = False) -> None:
        self.cache = cache
        self.single_flight = single_flight
        self._in_flight: Dict[Hashable, "asyncio.Task[V]"] = {}

    async def get_or_fetch(self, key: Hashable, loader: Callable[[], Awaitable[V]]) -> V:
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        if not self.single_flight:
            return await self._load(key, loader)

        pending = self._in_flight.get(key)
        if pending is None or pending.done():
            pending = asyncio.ensure_future(self._load(key, loader))
            self._in_flight[key] = pending
            pending.add_done_callback(functools.partial(self._finish, key))
        else:
            logger.debug(f"Joining in-flight load for {key}")
        return await asyncio.shield(pending)

    async def _load(self, key: Hashable, loader: Callable[[], Awaitable[V]]) -> V:
        value = await loader()
        self.cache.set(key, value)
        return value

    def _finish(self, key: Hashable, task: "asyncio.Task[V]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Retrieve it so a load whose callers all went away does not log a warning
            task.exception()
