"""
tagcache - Cache Module

Tag-indexed cache pools over pluggable backend drivers.

- interface.py: Driver contract every backend implements
- item.py: Cache item and its lifecycle states
- tag_index.py: Reverse tag -> keys index
- pool.py: CachePool, the uniform item API over one driver
- factory.py: Builds pools from a finalized configuration
- backends/: Driver implementations (memory, files, redis, memcached)

Usage:
    from tagcache.cache import build_pools

    pools = await build_pools(config)
    item = await pools["object"].get_item("key")
"""

from .factory import available_drivers, build_pools, create_pool, get_driver_class
from .interface import CacheDriver, DriverOptions, DriverStats
from .item import CacheItem, ItemState
from .pool import CachePool, StatsSnapshot, as_tag_list
from .tag_index import TagIndex

__all__ = [
    # Factory functions
    "build_pools",
    "create_pool",
    "get_driver_class",
    "available_drivers",
    # Pools and items
    "CachePool",
    "StatsSnapshot",
    "CacheItem",
    "ItemState",
    "TagIndex",
    "as_tag_list",
    # Driver contract
    "CacheDriver",
    "DriverOptions",
    "DriverStats",
]
