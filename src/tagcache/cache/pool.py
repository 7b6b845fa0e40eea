"""
tagcache - Cache Pool

One pool per configured context ("page", "object", "transient" or a custom
name). A pool owns exactly one driver and one tag index, exposes the item API
and keeps the tag index in step with every write.

Consistency model: there is no distributed locking. Concurrent writers to the
same key are last-write-wins at the backend, and the value write and the tag
index write are eventually consistent. Every invalidation path is idempotent.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from typing import Any

from ..errors import CacheConnectionError, CrossDriverTypeError, InvalidKeyError
from .interface import CacheDriver, DriverStats
from .item import VALUE_FIELD, CacheItem
from .tag_index import TagIndex

logger = logging.getLogger(__name__)

RESERVED_PREFIX = "__tagcache__"
TAG_INDEX_KEY = f"{RESERVED_PREFIX}:tag-index"


@dataclass(frozen=True)
class StatsSnapshot:
    """Read-only statistics for one pool."""

    pool: str
    driver: str
    uptime_seconds: int
    version: str
    size_bytes: int
    fallback: bool
    persists_tags: bool
    tag_count: int
    hits: int
    misses: int
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total * 100, 2) if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data


def as_tag_list(tags: Iterable[str] | str | None) -> list[str]:
    """Normalize a tag argument; a bare string is one tag, empty tags are dropped."""
    if not tags:
        return []
    if isinstance(tags, str):
        return [tags]
    return [t for t in tags if t]


class CachePool:
    """
    Cache pool bound to a single driver.

    Usage:
        pool = await CachePool("object", MemoryDriver()).open()
        item = await pool.get_item("user:1")
        if not item.is_hit():
            item.set({"name": "Ada"}).set_tags(["users"])
            await pool.save(item)
        await pool.delete_items_by_tags(["users"])
    """

    def __init__(self, name: str, driver: CacheDriver):
        self.name = name
        self.driver = driver
        self.fallback = False
        self._tags = TagIndex()
        self._hits = 0
        self._misses = 0
        self._lock = asyncio.Lock()
        driver.add_eviction_listener(self._forget_evicted)

    def __repr__(self) -> str:
        return f"CachePool(name={self.name!r}, driver={self.driver.name!r}, fallback={self.fallback})"

    @property
    def persists_tags(self) -> bool:
        """Whether tag invalidation survives a process restart for this pool."""
        return self.driver.persists_tags

    @property
    def tag_index(self) -> TagIndex:
        return self._tags

    async def open(self) -> CachePool:
        """
        Connect the driver.

        A connection failure is recorded as fallback rather than raised:
        reads then miss and writes report failure.
        """
        try:
            await self.driver.connect()
        except CacheConnectionError as e:
            self.fallback = True
            logger.warning(
                f"Pool '{self.name}' running in fallback mode: {e.message}",
                extra={"pool": self.name, "driver": self.driver.name, **e.details},
            )
        if self.driver.fallback:
            self.fallback = True

        await self._refresh_tag_index()
        return self

    async def close(self) -> None:
        await self.driver.close()

    # ------------ Helpers ------------

    @staticmethod
    def _check_key(key: Any) -> str:
        if not isinstance(key, str) or not key:
            raise InvalidKeyError("Cache keys must be non-empty strings", {"key": repr(key)})
        if key.startswith(RESERVED_PREFIX):
            raise InvalidKeyError(f"Cache keys may not start with '{RESERVED_PREFIX}'", {"key": key})
        return key

    def _check_item(self, item: Any) -> None:
        """Reject items that were not produced by this pool's driver item class."""
        expected = self.driver.item_class
        if type(item) is not expected:
            raise CrossDriverTypeError(self.name, expected.__name__, type(item).__name__)
        if item.pool_name is not None and item.pool_name != self.name:
            raise CrossDriverTypeError(
                self.name,
                f"{expected.__name__} from pool '{self.name}'",
                f"{type(item).__name__} from pool '{item.pool_name}'",
            )

    async def _read_payload(self, key: str) -> dict[str, Any] | None:
        try:
            payload = await self.driver.read(key)
        except Exception as e:
            logger.error(
                f"Read from pool '{self.name}' failed for key '{key}': {e}",
                extra={"pool": self.name, "key": key, "error": str(e)},
                exc_info=True,
            )
            return None
        if payload is None:
            return None
        if not isinstance(payload, dict) or VALUE_FIELD not in payload:
            logger.warning(
                f"Ignoring malformed entry for key '{key}' in pool '{self.name}'",
                extra={"pool": self.name, "key": key, "payload_type": type(payload).__name__},
            )
            return None
        return payload

    async def _refresh_tag_index(self) -> None:
        """Reload the tag index from the backend when the driver stores it."""
        if not self.persists_tags:
            return
        try:
            data = await self.driver.read(TAG_INDEX_KEY)
        except Exception as e:
            logger.error(f"Failed to load tag index for pool '{self.name}': {e}", exc_info=True)
            return
        self._tags = TagIndex.from_dict(data if isinstance(data, dict) else None)

    async def _store_tag_index(self) -> bool:
        if not self.persists_tags:
            return True
        try:
            if len(self._tags) == 0:
                return await self.driver.delete(TAG_INDEX_KEY)
            return await self.driver.write(TAG_INDEX_KEY, self._tags.to_dict(), None)
        except Exception as e:
            logger.error(f"Failed to store tag index for pool '{self.name}': {e}", exc_info=True)
            return False

    def _forget_evicted(self, key: str) -> None:
        self._tags.delete_key(key)

    async def _forget_missing(self, key: str) -> None:
        """Drop a key the backend no longer holds (expired or evicted) from the tag index."""
        async with self._lock:
            await self._refresh_tag_index()
            if not self._tags.tags_for(key):
                return
            try:
                payload = await self.driver.read(key)
            except Exception as e:
                logger.debug(f"Keeping index entry for key '{key}' in pool '{self.name}': {e}")
                return

            if payload is not None:
                if not isinstance(payload, dict) or VALUE_FIELD not in payload:
                    return
                current = self.driver.item_class(key)
                current._bind_hit(self.name, payload)
                # Rewritten since the read that missed
                if not current.is_expired():
                    return

            # Drivers report read errors as absence; only a confirmed delete proves it
            if not await self._backend_delete(key):
                return

            self._tags.delete_key(key)
            await self._store_tag_index()

        logger.debug(f"Dropped stale key '{key}' from the tag index of pool '{self.name}'")

    async def _backend_delete(self, key: str) -> bool:
        try:
            return await self.driver.delete(key)
        except Exception as e:
            logger.error(
                f"Delete from pool '{self.name}' failed for key '{key}': {e}",
                extra={"pool": self.name, "key": key, "error": str(e)},
                exc_info=True,
            )
            return False

    # ------------ Item API ------------

    async def get_item(self, key: str) -> CacheItem:
        """
        Fetch an item. Never raises on absence: a missing or expired entry
        comes back in MISS state and is dropped from the tag index.
        """
        self._check_key(key)
        item = self.driver.item_class(key)
        payload = await self._read_payload(key)

        if payload is not None:
            item._bind_hit(self.name, payload)
            if not item.is_expired():
                self._hits += 1
                return item

        stale_tags = self._tags.tags_for(key)
        if stale_tags:
            await self._forget_missing(key)

        item._bind_miss(self.name, stale_tags)
        self._misses += 1
        return item

    def new_item(self, key: str) -> CacheItem:
        """Create an item bound to this pool without reading the backend."""
        self._check_key(key)
        item = self.driver.item_class(key)
        item._adopt(self.name)
        return item

    async def get_items(self, keys: Iterable[str]) -> dict[str, CacheItem]:
        return {key: await self.get_item(key) for key in keys}

    async def has_item(self, key: str) -> bool:
        return (await self.get_item(key)).is_hit()

    async def save(self, item: CacheItem) -> bool:
        """
        Persist an item and reconcile its tags in the index.

        Raises:
            CrossDriverTypeError: If the item did not come from this pool
        """
        self._check_item(item)
        item._adopt(self.name)
        key = item.key

        if item.is_expired():
            return await self.delete_item(key)

        async with self._lock:
            await self._refresh_tag_index()
            previous = self._tags.tags_for(key)
            new_tags = item.tags
            self._tags.add_or_update(key, previous | item.persisted_tags, new_tags)

            try:
                ok = await self.driver.write(key, item.to_payload(), item.expiration)
            except Exception as e:
                logger.error(
                    f"Write to pool '{self.name}' failed for key '{key}': {e}",
                    extra={"pool": self.name, "key": key, "error": str(e)},
                    exc_info=True,
                )
                ok = False

            if not ok:
                # Undo the index change so it keeps matching what is persisted
                self._tags.add_or_update(key, new_tags, previous)
                logger.warning(
                    f"Failed to save key '{key}' in pool '{self.name}'",
                    extra={"pool": self.name, "key": key, "fallback": self.fallback},
                )
                return False

            await self._store_tag_index()

        item._mark_persisted()
        return True

    async def delete_item(self, key: str | CacheItem) -> bool:
        """Delete one entry; deleting a missing key succeeds."""
        if isinstance(key, CacheItem):
            self._check_item(key)
            key = key.key
        self._check_key(key)

        async with self._lock:
            await self._refresh_tag_index()
            if not await self._backend_delete(key):
                return False
            self._tags.delete_key(key)
            await self._store_tag_index()
        return True

    async def delete_items(self, keys: Iterable[str | CacheItem]) -> bool:
        results = [await self.delete_item(key) for key in keys]
        return all(results)

    async def delete_items_by_tags(self, tags: Iterable[str] | str) -> bool:
        """
        Delete every entry carrying any of the tags.

        Keys under several of the tags are deleted once. Calling this again
        for the same tags is a no-op.
        """
        tag_list = as_tag_list(tags)
        if not tag_list:
            return True

        async with self._lock:
            await self._refresh_tag_index()
            key_tags = {key: self._tags.tags_for(key) for tag in tag_list for key in self._tags.keys_for(tag)}
            keys = self._tags.delete_by_tags(tag_list)

            failed = []
            for key in keys:
                if not await self._backend_delete(key):
                    failed.append(key)
                    # Still persisted: keep it reachable through its tags
                    self._tags.add_or_update(key, (), key_tags.get(key, ()))

            await self._store_tag_index()

        logger.debug(
            f"Invalidated {len(keys) - len(failed)} key(s) by tags in pool '{self.name}'",
            extra={"pool": self.name, "tags": tag_list, "failed": failed},
        )
        return not failed

    async def clear(self) -> bool:
        """
        Wipe the backend namespace and reset the tag index.

        When the backend refuses the wipe the index is left untouched, so
        the surviving entries stay reachable by tag.
        """
        async with self._lock:
            try:
                ok = await self.driver.clear_all()
            except Exception as e:
                logger.error(f"Clear of pool '{self.name}' failed: {e}", exc_info=True)
                ok = False

            if not ok:
                logger.warning(
                    f"Clear of pool '{self.name}' failed; tag index kept",
                    extra={"pool": self.name, "fallback": self.fallback},
                )
                return False

            self._tags.clear()
            await self._store_tag_index()
        return True

    async def increment(self, key: str, by: int = 1, tags: Iterable[str] | str | None = None) -> int | None:
        """
        Add by to an integer entry and return the new value.

        Returns:
            The new value, or None when the key is a miss (nothing is written)
            or the write failed

        Raises:
            CacheValueError: If the stored value or the step is not an integer
        """
        item = await self.get_item(key)
        if not item.is_hit():
            return None

        item.increment(by)
        if tags:
            item.add_tags(tags)
        if not await self.save(item):
            return None
        return item.get()

    async def decrement(self, key: str, by: int = 1, tags: Iterable[str] | str | None = None) -> int | None:
        item = await self.get_item(key)
        if not item.is_hit():
            return None

        item.decrement(by)
        if tags:
            item.add_tags(tags)
        if not await self.save(item):
            return None
        return item.get()

    async def get_stats(self) -> StatsSnapshot:
        try:
            stats = await self.driver.stats()
        except Exception as e:
            logger.warning(f"Failed to collect stats for pool '{self.name}': {e}", extra={"error": str(e)})
            stats = DriverStats(uptime_seconds=int(time.time() - self.driver.started_at))

        return StatsSnapshot(
            pool=self.name,
            driver=self.driver.name,
            uptime_seconds=stats.uptime_seconds,
            version=stats.version,
            size_bytes=stats.size_bytes,
            fallback=self.fallback,
            persists_tags=self.persists_tags,
            tag_count=len(self._tags),
            hits=self._hits,
            misses=self._misses,
            raw=stats.raw,
        )
