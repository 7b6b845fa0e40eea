"""
tagcache - Configuration Module

Provides typed runtime settings, the finalized pool configuration models and
snapshot persistence. The reconciler lives in tagcache.config.reconciler.
"""

from .loader import get_config, load_config, load_raw_settings, reload_config
from .schemas import (
    RESERVED_CONTEXTS,
    AliasPoolConfig,
    Environment,
    FinalizedConfig,
    LogLevel,
    OwnedPoolConfig,
    PoolConfig,
    PoolContext,
    RawPoolSettings,
    TagCacheSettings,
)
from .snapshot import read_snapshot, write_snapshot

__all__ = [
    # Loader functions
    "load_config",
    "get_config",
    "reload_config",
    "load_raw_settings",
    # Snapshot persistence
    "read_snapshot",
    "write_snapshot",
    # Runtime settings
    "TagCacheSettings",
    "Environment",
    "LogLevel",
    # Pool configuration
    "PoolContext",
    "RESERVED_CONTEXTS",
    "RawPoolSettings",
    "OwnedPoolConfig",
    "AliasPoolConfig",
    "PoolConfig",
    "FinalizedConfig",
]
