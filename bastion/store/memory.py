"""
In-process TTL store backed by ``cachetools``.

Suitable for a single worker process. Entries carry an absolute expiry,
evaluated against the injected clock, so tests can advance time without
sleeping.

Security records must only disappear on expiry or explicit removal, so the
cache never evicts a live entry to make room: once ``maxsize`` live entries
are held, writes of new keys fail with ``StoreUnavailableError`` and the
components apply their usual outage policy.
"""

from __future__ import annotations

import math
import threading

from cachetools import TLRUCache

from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger
from bastion.core.time import Clock, system_clock
from bastion.store.base import TTLStore, load_int

logger = get_logger(__name__)


def _expires_at(key, value, now) -> float:
    return value[1]


class _NonEvictingTLRUCache(TLRUCache):
    """TLRUCache that drops expired items but refuses to evict live ones."""

    def popitem(self):
        logger.warning("Memory store full; refusing write", data={"maxsize": self.maxsize})
        raise StoreUnavailableError("In-memory security store is full")


class MemoryTTLStore(TTLStore):
    """TTL store holding ``(value, expires_at)`` pairs in a ``TLRUCache``."""

    def __init__(self, maxsize: int = 100_000, clock: Clock = system_clock):
        self._clock = clock
        self._maxsize = maxsize
        self._cache: TLRUCache = self._new_cache()
        # Guards the cache structure only; counters remain read-modify-write.
        self._lock = threading.Lock()

    def _new_cache(self) -> TLRUCache:
        return _NonEvictingTLRUCache(maxsize=self._maxsize, ttu=_expires_at, timer=self._clock)

    def _deadline(self, ttl: int | None) -> float:
        if ttl is None:
            return math.inf
        return self._clock() + ttl

    def get(self, key: str) -> bytes | None:
        with self._lock:
            item = self._cache.get(key)
        return item[0] if item is not None else None

    def set(self, key: str, value: bytes, ttl: int | None) -> None:
        with self._lock:
            self._cache[key] = (value, self._deadline(ttl))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def increment(self, key: str, ttl: int) -> int:
        with self._lock:
            item = self._cache.get(key)
            if item is None:
                count, deadline = 1, self._deadline(ttl)
            else:
                count, deadline = load_int(key, item[0]) + 1, item[1]
            self._cache[key] = (str(count).encode(), deadline)
        return count

    def ttl(self, key: str) -> float | None:
        """Seconds until ``key`` expires, None if absent or unbounded."""
        with self._lock:
            item = self._cache.get(key)
        if item is None or item[1] == math.inf:
            return None
        return max(0.0, item[1] - self._clock())

    def clear(self) -> None:
        with self._lock:
            # MutableMapping.clear goes through popitem, which refuses here.
            self._cache = self._new_cache()

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)
