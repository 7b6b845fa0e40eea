"""
tagcache - Driver Interface

Defines the abstract contract that every storage backend driver implements.
Drivers move opaque payloads; items, tags and expiration checks live in the
pool layer above.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

from .item import CacheItem


class DriverOptions(BaseModel):
    """
    Base model for driver-specific options.

    Unknown options are rejected so that the reconciler can fail closed on
    stray or misspelled settings.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    namespace: str = "tagcache"


@dataclass(frozen=True)
class DriverStats:
    """Read-only statistics reported by a driver."""

    uptime_seconds: int = 0
    version: str = "unknown"
    size_bytes: int = 0
    raw: dict[str, Any] = field(default_factory=dict)


class CacheDriver(ABC):
    """
    Abstract base class for cache backend drivers.

    Class attributes:
        name: Driver identifier used in configuration ("memory", "redis", ...)
        item_class: CacheItem subclass produced by pools using this driver
        Options: Pydantic model describing the driver's accepted options
        persists_tags: Whether tag metadata survives a process restart
    """

    name: ClassVar[str]
    item_class: ClassVar[type[CacheItem]] = CacheItem
    Options: ClassVar[type[DriverOptions]] = DriverOptions
    persists_tags: ClassVar[bool] = False

    def __init__(self, options: Mapping[str, Any] | None = None):
        """
        Initialize the driver.

        Args:
            options: Driver options (validated against the driver's Options model)

        Raises:
            pydantic.ValidationError: If the options are invalid
        """
        self.options = self.Options.model_validate(dict(options or {}))
        self.namespace = self.options.namespace
        self.fallback = False
        self.connected = False
        self.started_at = time.time()
        self._eviction_listeners: list[Callable[[str], None]] = []

    @classmethod
    def validate_option(cls, name: str, value: Any) -> bool:
        """
        Check a single option against the driver's Options model.

        Pure and side-effect free; used by the config reconciler.
        """
        if name not in cls.Options.model_fields:
            return False
        try:
            cls.Options.model_validate({name: value})
        except ValidationError:
            return False
        return True

    @classmethod
    def normalize_options(cls, options: Mapping[str, Any]) -> dict[str, Any]:
        """Return only the given options, coerced to their declared types."""
        model = cls.Options.model_validate(dict(options))
        return model.model_dump(mode="json", include=set(options))

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the backend connection.

        Partial failures set self.fallback and return normally.

        Raises:
            CacheConnectionError: If no connection can be established at all
        """

    @abstractmethod
    async def read(self, key: str) -> Any | None:
        """
        Read a stored payload.

        Returns:
            The payload, or None when absent
        """

    @abstractmethod
    async def write(self, key: str, payload: Any, expiration: float | None) -> bool:
        """
        Store a payload.

        Args:
            key: Cache key
            payload: JSON-serializable payload
            expiration: Absolute UNIX timestamp, None for never

        Returns:
            True if stored successfully, False otherwise
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a key. A missing key is not an error.

        Returns:
            True unless the backend call failed
        """

    @abstractmethod
    async def clear_all(self) -> bool:
        """Wipe every entry in the namespace used by this driver."""

    @abstractmethod
    async def stats(self) -> DriverStats:
        """Return backend statistics."""

    async def close(self) -> None:
        """Release backend resources. Drivers without resources need not override."""
        self.connected = False

    def uptime(self) -> int:
        return int(time.time() - self.started_at)

    def add_eviction_listener(self, callback: Callable[[str], None]) -> None:
        """
        Register a callback for keys the driver drops on its own.

        Drivers that evict or expire entries internally report the logical
        (un-namespaced) key so that the owning pool can forget its tags.
        """
        self._eviction_listeners.append(callback)

    def _notify_evicted(self, key: str) -> None:
        for callback in self._eviction_listeners:
            callback(key)
