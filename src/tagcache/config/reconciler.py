"""
tagcache - Configuration Reconciler

Turns loosely structured, user-editable pool settings into one finalized
configuration per pool before any backend connection is opened.

Per pool entry:
1. Empty values (None, "") are dropped.
2. A missing, falsy, "disabled" or unknown `type` disables the pool and
   discards every driver option.
3. A reserved context name ("page", "object", "transient") in `type` that
   differs from the entry name makes the entry an alias of that context.
4. Otherwise the keys prefixed with "<type>_" are stripped of the prefix and
   checked one by one with the driver's validate_option(). A single rejection
   disables the whole pool (fail closed) and is reported as a recoverable
   InvalidOptionError.
5. Surviving options are normalized by the driver; `enabled` defaults to True.

An unexpected exception while reconciling one pool disables only that pool.
The complete result is then written as a new snapshot, replacing the old one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..cache.factory import DRIVER_LOADERS
from ..cache.interface import CacheDriver
from ..errors import ConfigurationError, InvalidOptionError, TagCacheError
from .schemas import (
    RESERVED_CONTEXTS,
    AliasPoolConfig,
    FinalizedConfig,
    OwnedPoolConfig,
    PoolConfig,
    PoolContext,
    RawPoolSettings,
)
from .snapshot import write_snapshot

logger = logging.getLogger(__name__)

DISABLED_TYPE = "disabled"


@dataclass
class ReconciliationResult:
    """Finalized configuration plus the recoverable errors met on the way."""

    config: FinalizedConfig
    errors: list[TagCacheError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def errors_for(self, pool: str) -> list[TagCacheError]:
        return [e for e in self.errors if e.details.get("pool") == pool]

    def error_summary(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self.errors]


def _strip_empty(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in raw.items() if value is not None and value != ""}


class ConfigReconciler:
    """
    Validates and normalizes raw pool settings.

    Args:
        drivers: Mapping of driver name to a loader returning the driver class
            (defaults to the factory's registry)
    """

    def __init__(self, drivers: Mapping[str, Callable[[], type[CacheDriver]]] | None = None):
        self._drivers = dict(drivers if drivers is not None else DRIVER_LOADERS)

    def _driver_class(self, name: str) -> type[CacheDriver] | None:
        loader = self._drivers.get(name)
        return loader() if loader is not None else None

    def reconcile(self, raw: Mapping[str, Any]) -> ReconciliationResult:
        """Reconcile every pool entry of a raw settings mapping."""
        result = ReconciliationResult(config=FinalizedConfig())

        for name, entry in raw.items():
            try:
                pool_config = self._reconcile_pool(str(name), entry, result.errors)
            except Exception as e:
                # Never let one pool abort the others
                error = ConfigurationError(
                    f"Failed to reconcile pool '{name}': {e}",
                    details={"pool": str(name), "error": str(e)},
                )
                result.errors.append(error)
                logger.error(error.message, extra={"pool": str(name), "error": str(e)}, exc_info=True)
                pool_config = OwnedPoolConfig(type=None, enabled=False)
            result.config.pools[str(name)] = pool_config

        logger.info(
            f"Reconciled {len(result.config.pools)} pool(s), {len(result.errors)} error(s)",
            extra={"enabled": result.config.enabled_pools(), "error_count": len(result.errors)},
        )
        return result

    def _reconcile_pool(self, name: str, entry: Any, errors: list[TagCacheError]) -> PoolConfig:
        if not isinstance(entry, Mapping):
            errors.append(
                ConfigurationError(
                    f"Settings for pool '{name}' must be a mapping",
                    details={"pool": name, "type": type(entry).__name__},
                )
            )
            return OwnedPoolConfig(type=None, enabled=False)

        settings = RawPoolSettings.model_validate(_strip_empty(entry))
        driver_name = settings.type if isinstance(settings.type, str) else None

        # Step 1: no usable driver
        if not driver_name or driver_name == DISABLED_TYPE:
            return OwnedPoolConfig(type=None, enabled=False)

        # Step 2: alias of a reserved context
        if driver_name in RESERVED_CONTEXTS:
            if driver_name != name:
                return AliasPoolConfig(alias_of=PoolContext(driver_name), enabled=True)
            # A context cannot alias itself
            errors.append(
                ConfigurationError(
                    f"Pool '{name}' names itself as its driver",
                    details={"pool": name, "driver": driver_name},
                )
            )
            return OwnedPoolConfig(type=None, enabled=False)

        driver_class = self._driver_class(driver_name)
        if driver_class is None:
            errors.append(
                ConfigurationError(
                    f"Unknown cache driver '{driver_name}' for pool '{name}'",
                    details={"pool": name, "driver": driver_name, "supported": sorted(self._drivers)},
                )
            )
            return OwnedPoolConfig(type=None, enabled=False)

        # Step 3: validate every prefixed option, fail closed on any rejection
        options = settings.prefixed_options(driver_name)
        rejected = [key for key, value in options.items() if not driver_class.validate_option(key, value)]
        if rejected:
            for key in rejected:
                error = InvalidOptionError(name, driver_name, key, options[key])
                errors.append(error)
                logger.warning(error.message, extra={"pool": name, "driver": driver_name, "option": key})
            return OwnedPoolConfig(type=driver_name, enabled=False)

        # Step 4: finalize
        try:
            normalized = driver_class.normalize_options(options)
        except ValidationError as e:
            # Options valid one by one but not together
            errors.append(
                ConfigurationError(
                    f"Options for pool '{name}' are inconsistent: {e}",
                    details={"pool": name, "driver": driver_name, "error": str(e)},
                )
            )
            return OwnedPoolConfig(type=driver_name, enabled=False)

        enabled = True if settings.enabled is None else settings.enabled
        return OwnedPoolConfig(type=driver_name, enabled=enabled, options=normalized)

    def reconcile_and_persist(self, raw: Mapping[str, Any], snapshot_path: str | Path) -> ReconciliationResult:
        """Reconcile raw settings and replace the snapshot with the result."""
        result = self.reconcile(raw)
        write_snapshot(result.config, snapshot_path)
        return result
