"""
tagcache - Pool Factory

Canonical way to turn a finalized configuration into connected pools.

Key points:
- Drivers are looked up by the finalized config's `type` field
- Redis and memcached drivers are imported lazily, so their client libraries
  are only required when a pool uses them
- Alias entries resolve to the same CachePool object as their target context
- Nothing is cached at module level: callers own the pools they build

Examples:
    from tagcache.cache.factory import build_pools
    from tagcache.config import FinalizedConfig, OwnedPoolConfig

    config = FinalizedConfig(pools={"object": OwnedPoolConfig(type="memory", enabled=True)})
    pools = await build_pools(config)
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..config.schemas import AliasPoolConfig, FinalizedConfig, OwnedPoolConfig
from ..errors import ConfigurationError
from .backends.files import FileDriver
from .backends.memory import MemoryDriver
from .interface import CacheDriver
from .pool import CachePool

logger = logging.getLogger(__name__)


def _load_redis() -> type[CacheDriver]:
    try:
        from .backends.redis import RedisDriver
    except ImportError as e:
        logger.error(
            "Redis driver selected but redis client is not installed",
            extra={"package": "redis>=5.0.0", "error": str(e)},
        )
        raise ConfigurationError(
            "Redis driver selected but redis client is unavailable. Install with: pip install 'redis>=5.0.0'",
            details={"package": "redis>=5.0.0", "error": str(e), "driver": "redis"},
        ) from e
    return RedisDriver


def _load_memcached() -> type[CacheDriver]:
    try:
        from .backends.memcached import MemcachedDriver
    except ImportError as e:
        logger.error(
            "Memcached driver selected but pymemcache is not installed",
            extra={"package": "pymemcache>=4.0.0", "error": str(e)},
        )
        raise ConfigurationError(
            "Memcached driver selected but pymemcache is unavailable. Install with: pip install 'pymemcache>=4.0.0'",
            details={"package": "pymemcache>=4.0.0", "error": str(e), "driver": "memcached"},
        ) from e
    return MemcachedDriver


DRIVER_LOADERS: dict[str, Callable[[], type[CacheDriver]]] = {
    "memory": lambda: MemoryDriver,
    "files": lambda: FileDriver,
    "redis": _load_redis,
    "memcached": _load_memcached,
}


def available_drivers() -> list[str]:
    return sorted(DRIVER_LOADERS)


def get_driver_class(name: str) -> type[CacheDriver]:
    """
    Resolve a driver class by its configured name.

    Raises:
        ConfigurationError: If the driver is unknown or its client library is missing
    """
    loader = DRIVER_LOADERS.get(name)
    if loader is None:
        raise ConfigurationError(
            f"Unknown cache driver: {name}",
            details={"driver": name, "supported": available_drivers()},
        )
    return loader()


async def create_pool(name: str, config: OwnedPoolConfig) -> CachePool:
    """
    Construct and open the pool for one owned configuration.

    The driver namespace defaults to the pool name so that pools sharing a
    server do not collide.

    Raises:
        ConfigurationError: If the driver cannot be constructed
    """
    if not config.type:
        raise ConfigurationError(f"Pool '{name}' has no driver", details={"pool": name})

    driver_class = get_driver_class(config.type)
    options = dict(config.options)
    options.setdefault("namespace", name)

    try:
        driver = driver_class(options)
    except Exception as e:
        raise ConfigurationError(
            f"Failed to create driver '{config.type}' for pool '{name}': {e}",
            details={"pool": name, "driver": config.type, "error": str(e)},
        ) from e

    pool = await CachePool(name, driver).open()
    logger.info(
        f"Pool '{name}' created with driver '{config.type}'",
        extra={"pool": name, "driver": config.type, "fallback": pool.fallback},
    )
    return pool


async def build_pools(config: FinalizedConfig) -> dict[str, CachePool | None]:
    """
    Build every pool of a finalized configuration.

    Disabled pools and pools whose driver fails to build map to None; the
    failure is logged and the remaining pools are still built. Aliases map to
    the pool object of their target (None if the target is not available).
    """
    pools: dict[str, CachePool | None] = {}
    aliases: dict[str, AliasPoolConfig] = {}

    for name, pool_config in config.pools.items():
        if isinstance(pool_config, AliasPoolConfig):
            aliases[name] = pool_config
            continue
        if not pool_config.enabled or not pool_config.type:
            pools[name] = None
            continue
        try:
            pools[name] = await create_pool(name, pool_config)
        except ConfigurationError as e:
            logger.error(
                f"Pool '{name}' disabled: {e.message}",
                extra={"pool": name, "error_code": e.code.value, **e.details},
            )
            pools[name] = None

    # Resolve chains (transient -> object -> page) whatever the entry order
    pending = dict(aliases)
    while pending:
        resolved = [name for name, alias in pending.items() if alias.alias_of.value not in pending]
        if not resolved:
            logger.warning(
                f"Alias cycle between pools {sorted(pending)}; disabling them",
                extra={"pools": sorted(pending)},
            )
            for name in pending:
                pools[name] = None
            break

        for name in resolved:
            alias = pending.pop(name)
            target = pools.get(alias.alias_of.value)
            pools[name] = target if alias.enabled else None
            if target is None:
                logger.warning(
                    f"Pool '{name}' aliases '{alias.alias_of.value}', which is not enabled",
                    extra={"pool": name, "alias_of": alias.alias_of.value},
                )

    return pools
