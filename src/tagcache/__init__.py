"""
tagcache - Multi-Context Tag-Invalidated Caching

One facade over several cache pools ("page", "object", "transient"), each
backed by a pluggable driver (memory, files, redis, memcached), with
tag-based invalidation and a fail-closed configuration reconciler.
"""

__version__ = "1.0.0"

# Cache must be imported before the reconciler, which depends on the factory
from .cache import CachePool, StatsSnapshot, build_pools
from .config.reconciler import ConfigReconciler, ReconciliationResult
from .content import ContentEvent
from .errors import TagCacheError
from .facade import CacheFacade

__all__ = [
    "CacheFacade",
    "CachePool",
    "StatsSnapshot",
    "build_pools",
    "ConfigReconciler",
    "ReconciliationResult",
    "ContentEvent",
    "TagCacheError",
]
