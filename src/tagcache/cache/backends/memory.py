"""
tagcache - Memory Driver

In-memory driver with LRU eviction and expiration support.
Suitable for single-process deployments and tests; nothing survives a restart,
so tag metadata is kept in memory only (persists_tags=False).
"""

import asyncio
import logging
import sys
import time
from collections import OrderedDict
from typing import Any

from pydantic import Field

from ..interface import CacheDriver, DriverOptions, DriverStats
from ..item import CacheItem

logger = logging.getLogger(__name__)


class MemoryItem(CacheItem):
    """Cache item produced by memory-backed pools."""


class MemoryOptions(DriverOptions):
    """Options accepted by the memory driver."""

    max_size: int = Field(default=1000, ge=1, description="Maximum entries (LRU eviction when exceeded)")


class MemoryDriver(CacheDriver):
    """
    In-memory driver with LRU eviction.

    Features:
    - LRU eviction when max_size is reached
    - Absolute expiration per key
    - Lock-protected operations
    """

    name = "memory"
    item_class = MemoryItem
    Options = MemoryOptions
    persists_tags = False

    def __init__(self, options: dict[str, Any] | None = None):
        super().__init__(options)
        self.max_size = self.options.max_size

        # Storage: key -> (payload, expiration)
        self._store: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()
        self._evictions = 0
        self._lock = asyncio.Lock()

    def _make_key(self, key: str) -> str:
        """Create namespaced cache key."""
        return f"{self.namespace}:{key}"

    def _logical_key(self, cache_key: str) -> str:
        return cache_key[len(self.namespace) + 1 :]

    @staticmethod
    def _is_expired(expiration: float | None) -> bool:
        if expiration is None:
            return False
        return time.time() >= expiration

    async def connect(self) -> None:
        self.connected = True
        logger.debug(f"Memory driver ready for namespace '{self.namespace}'")

    async def read(self, key: str) -> Any | None:
        async with self._lock:
            cache_key = self._make_key(key)
            entry = self._store.get(cache_key)
            if entry is None:
                return None

            payload, expiration = entry
            if self._is_expired(expiration):
                del self._store[cache_key]
                self._notify_evicted(key)
                return None

            # Mark as recently used
            self._store.move_to_end(cache_key)
            return payload

    async def write(self, key: str, payload: Any, expiration: float | None) -> bool:
        async with self._lock:
            cache_key = self._make_key(key)

            if self._is_expired(expiration):
                self._store.pop(cache_key, None)
                return True

            # Evict if at capacity and key is new
            if cache_key not in self._store and len(self._store) >= self.max_size:
                evicted_key, _ = self._store.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted key from memory cache: {evicted_key}")
                self._notify_evicted(self._logical_key(evicted_key))

            self._store[cache_key] = (payload, expiration)
            self._store.move_to_end(cache_key)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            self._store.pop(self._make_key(key), None)
            return True

    async def clear_all(self) -> bool:
        async with self._lock:
            size = len(self._store)
            self._store.clear()
        logger.info(f"Cleared {size} entries from memory cache namespace '{self.namespace}'")
        return True

    async def stats(self) -> DriverStats:
        async with self._lock:
            size_bytes = sum(sys.getsizeof(payload) for payload, _ in self._store.values())
            return DriverStats(
                uptime_seconds=self.uptime(),
                version=f"python-{sys.version_info.major}.{sys.version_info.minor}",
                size_bytes=size_bytes,
                raw={
                    "backend": "memory",
                    "entries": len(self._store),
                    "max_size": self.max_size,
                    "evictions": self._evictions,
                    "namespace": self.namespace,
                },
            )

    async def close(self) -> None:
        # Data persists in-process; nothing to release
        await super().close()
        logger.debug(f"Memory driver closed for namespace '{self.namespace}'")
