"""
tagcache - Cache Facade

Single entry point for application code. Holds one pool per context, routes
keys to the object or transient pool, and turns content events into tag
invalidations on the page pool.

Routing: a key containing "transient" goes to the transient pool, every other
key to the object pool. Pass context= to route explicitly.

Return conventions:
- read() returns the stored value, or False on a miss
- edit_increase() / edit_decrease() return the new integer, or False
- add(), delete() and flush() return True on success
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from .cache import CachePool, StatsSnapshot, as_tag_list, build_pools
from .config.loader import get_config, load_raw_settings
from .config.reconciler import ConfigReconciler
from .config.schemas import RESERVED_CONTEXTS, FinalizedConfig, PoolContext, TagCacheSettings
from .config.snapshot import read_snapshot
from .content import ContentEvent, published_tags, saved_tags
from .observability import configure_logging

logger = logging.getLogger(__name__)

TRANSIENT_MARKER = "transient"


class CacheFacade:
    """
    Multi-context cache facade.

    Usage:
        async with await CacheFacade.from_settings() as cache:
            await cache.add("obj:page1", "<html>", tags=["/home"])
            value = await cache.read("obj:page1")
            await cache.delete(tags=["/home"])

    Args:
        pools: Mapping of context name to pool (None for a disabled context)
        default_ttl: TTL in seconds used when add() gets none (-1 = never expire)
    """

    def __init__(self, pools: Mapping[str, CachePool | None], default_ttl: int = -1):
        self._pools: dict[str, CachePool | None] = dict(pools)
        for context in RESERVED_CONTEXTS:
            self._pools.setdefault(context, None)
        self.default_ttl = default_ttl

    def __repr__(self) -> str:
        enabled = [name for name, pool in self._pools.items() if pool is not None]
        return f"CacheFacade(enabled={enabled})"

    # ------------ Construction ------------

    @classmethod
    async def from_config(cls, config: FinalizedConfig, default_ttl: int = -1) -> CacheFacade:
        return cls(await build_pools(config), default_ttl=default_ttl)

    @classmethod
    async def from_snapshot(cls, path: str | Path, default_ttl: int = -1) -> CacheFacade:
        """Build from a snapshot file; a missing or corrupt snapshot enables nothing."""
        return await cls.from_config(read_snapshot(path), default_ttl=default_ttl)

    @classmethod
    async def from_settings(
        cls, settings: TagCacheSettings | None = None, setup_logging: bool = False
    ) -> CacheFacade:
        """
        Build from runtime settings.

        When no snapshot exists yet it is generated from the raw pool settings
        file first. With setup_logging the tagcache logger is configured from
        the settings' log_level and log_json.
        """
        settings = settings or get_config()
        if setup_logging:
            configure_logging(level=settings.log_level, json_format=settings.log_json)
        snapshot_path = Path(settings.snapshot_path)

        if not snapshot_path.exists():
            raw = load_raw_settings(settings.settings_path)
            if raw:
                result = ConfigReconciler().reconcile_and_persist(raw, snapshot_path)
                if not result.ok:
                    logger.warning(
                        f"Cache settings reconciled with {len(result.errors)} error(s)",
                        extra={"errors": result.error_summary()},
                    )

        return await cls.from_snapshot(snapshot_path, default_ttl=settings.default_ttl)

    async def __aenter__(self) -> CacheFacade:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------ Pools ------------

    @property
    def pools(self) -> dict[str, CachePool | None]:
        return dict(self._pools)

    def get_instance(self, context: str | PoolContext = PoolContext.PAGE) -> CachePool | None:
        """Return the pool serving a context, or None when it is disabled."""
        name = context.value if isinstance(context, PoolContext) else context
        return self._pools.get(name)

    def route(self, key: str, context: str | PoolContext | None = None) -> CachePool | None:
        if context is not None:
            return self.get_instance(context)
        if TRANSIENT_MARKER in key:
            return self._pools.get(PoolContext.TRANSIENT.value)
        return self._pools.get(PoolContext.OBJECT.value)

    def _distinct_pools(self) -> list[CachePool]:
        seen: dict[int, CachePool] = {}
        for pool in self._pools.values():
            if pool is not None:
                seen.setdefault(id(pool), pool)
        return list(seen.values())

    # ------------ Operations ------------

    async def read(self, key: str, *, context: str | PoolContext | None = None) -> Any:
        pool = self.route(key, context)
        if pool is None:
            return False
        item = await pool.get_item(key)
        return item.get() if item.is_hit() else False

    async def add(
        self,
        key: str,
        value: Any,
        tags: Iterable[str] | str | None = None,
        ttl: int | None = None,
        *,
        context: str | PoolContext | None = None,
    ) -> bool:
        """
        Store a value, replacing any previous one.

        Args:
            key: Cache key
            value: JSON-serializable value
            tags: Tags to attach (replaces the previous tags)
            ttl: Seconds until expiry; -1 or 0 never expires, None uses default_ttl
            context: Explicit pool context instead of key routing
        """
        pool = self.route(key, context)
        if pool is None:
            return False

        item = pool.new_item(key)
        item.set(value)
        item.set_tags(as_tag_list(tags))
        item.expires_after(self.default_ttl if ttl is None else ttl)
        return await pool.save(item)

    async def edit(
        self,
        key: str,
        value: Any,
        tags: Iterable[str] | str | None = None,
        ttl: int | None = None,
        *,
        context: str | PoolContext | None = None,
    ) -> bool:
        return await self.add(key, value, tags, ttl, context=context)

    async def edit_increase(
        self,
        key: str,
        delta: int = 1,
        tags: Iterable[str] | str | None = None,
        *,
        context: str | PoolContext | None = None,
    ) -> int | bool:
        pool = self.route(key, context)
        if pool is None:
            return False
        result = await pool.increment(key, delta, tags)
        return False if result is None else result

    async def edit_decrease(
        self,
        key: str,
        delta: int = 1,
        tags: Iterable[str] | str | None = None,
        *,
        context: str | PoolContext | None = None,
    ) -> int | bool:
        pool = self.route(key, context)
        if pool is None:
            return False
        result = await pool.decrement(key, delta, tags)
        return False if result is None else result

    async def delete(
        self,
        key: str | None = None,
        tags: Iterable[str] | str | None = None,
        *,
        context: str | PoolContext | None = None,
    ) -> bool:
        """
        Delete by key, by tags or both.

        With tags only, every enabled pool is invalidated. With a key, the
        routed pool deletes the key and then the tags. Without either this is
        a no-op; an empty key counts as no key.
        """
        tag_list = as_tag_list(tags)

        if not key:
            if not tag_list:
                return True
            results = [await pool.delete_items_by_tags(tag_list) for pool in self._distinct_pools()]
            return all(results)

        pool = self.route(key, context)
        if pool is None:
            return False
        ok = await pool.delete_item(key)
        if tag_list:
            ok = await pool.delete_items_by_tags(tag_list) and ok
        return ok

    async def invalidate_paths(self, paths: Iterable[str] | str) -> bool:
        """Invalidate page entries tagged with any of the given paths."""
        tag_list = list(dict.fromkeys(as_tag_list(paths)))
        if not tag_list:
            return True
        pool = self.get_instance(PoolContext.PAGE)
        if pool is None:
            return True
        logger.debug("Invalidating page paths", extra={"tags": tag_list})
        return await pool.delete_items_by_tags(tag_list)

    async def on_content_published(self, event: ContentEvent) -> list[str]:
        """Invalidate the listing pages of newly published content; returns the tags."""
        tags = published_tags(event)
        await self.invalidate_paths(tags)
        return tags

    async def on_content_saved(self, event: ContentEvent, now: float | None = None) -> list[str]:
        """Invalidate the pages affected by saved content; returns the tags."""
        tags = saved_tags(event, now=now)
        await self.invalidate_paths(tags)
        return tags

    async def flush(self) -> bool:
        """Clear every enabled pool."""
        results = [await pool.clear() for pool in self._distinct_pools()]
        logger.info(f"Flushed {len(results)} pool(s)")
        return all(results)

    async def get_stats(self) -> dict[str, StatsSnapshot]:
        """Stats per enabled context; aliases report their target's stats."""
        by_pool = {id(pool): await pool.get_stats() for pool in self._distinct_pools()}
        return {name: by_pool[id(pool)] for name, pool in self._pools.items() if pool is not None}

    async def close(self) -> None:
        for pool in self._distinct_pools():
            try:
                await pool.close()
            except Exception as e:
                logger.warning(f"Failed to close pool '{pool.name}': {e}", extra={"pool": pool.name})
