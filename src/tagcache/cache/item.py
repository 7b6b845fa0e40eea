"""
tagcache - Cache Item

The unit of cached data: a key, a value, an absolute expiration and a set of
tags, plus the read/write lifecycle state of the item.

State machine:
    UNBOUND -> HIT | MISS      (bound by a pool on get_item)
    HIT | MISS -> DIRTY        (value, tags or expiration mutated locally)
    DIRTY -> PERSISTED         (written back through the pool)

A MISS that is populated becomes DIRTY, never HIT.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from ..errors import CacheValueError, InvalidKeyError

# Fields of the stored payload wrapping an item's value
VALUE_FIELD = "value"
EXPIRATION_FIELD = "expiration"
TAGS_FIELD = "tags"


class ItemState(str, Enum):
    """Lifecycle states of a cache item."""

    UNBOUND = "unbound"
    HIT = "hit"
    MISS = "miss"
    DIRTY = "dirty"
    PERSISTED = "persisted"


def _normalize_tags(tags: Iterable[str] | str | None) -> frozenset[str]:
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        tags = [tags]
    normalized = set()
    for tag in tags:
        if not isinstance(tag, str) or not tag:
            raise InvalidKeyError("Cache tags must be non-empty strings", {"tag": repr(tag)})
        normalized.add(tag)
    return frozenset(normalized)


def _coerce_int(value: Any, what: str) -> int:
    """Return value as int, accepting ints and integer strings only."""
    if isinstance(value, bool):
        raise CacheValueError(f"{what} must be an integer, got bool", {"value": value})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise CacheValueError(f"{what} must be an integer", {"value": repr(value), "type": type(value).__name__})


class CacheItem:
    """
    A cache item.

    Items are created by CachePool.get_item() and must be saved back through
    the same pool. Each driver declares its own CacheItem subclass so that a
    pool can detect items produced by a pool of another driver.
    """

    def __init__(self, key: str):
        if not isinstance(key, str) or not key:
            raise InvalidKeyError("Cache keys must be non-empty strings", {"key": repr(key)})
        self._key = key
        self._value: Any = None
        self._expiration: float | None = None
        self._tags: frozenset[str] = frozenset()
        self._state = ItemState.UNBOUND
        self._pool_name: str | None = None

        # Tags last known to be persisted under this key (used for index reconciliation)
        self._persisted_tags: frozenset[str] = frozenset()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self._key!r}, state={self._state.value}, tags={sorted(self._tags)!r})"

    # ------------ Accessors ------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def state(self) -> ItemState:
        return self._state

    @property
    def pool_name(self) -> str | None:
        """Name of the pool this item was bound to (None while unbound)."""
        return self._pool_name

    @property
    def tags(self) -> frozenset[str]:
        return self._tags

    @property
    def persisted_tags(self) -> frozenset[str]:
        return self._persisted_tags

    @property
    def expiration(self) -> float | None:
        """Absolute UNIX timestamp, or None for never."""
        return self._expiration

    def is_hit(self) -> bool:
        """True only for an item loaded from the backend and not yet modified."""
        return self._state is ItemState.HIT

    def get(self) -> Any:
        """Return the item's value; None for a miss that was never populated."""
        if self._state in (ItemState.MISS, ItemState.UNBOUND):
            return None
        return self._value

    def is_expired(self, now: float | None = None) -> bool:
        if self._expiration is None:
            return False
        return (now if now is not None else time.time()) >= self._expiration

    # ------------ Mutators ------------

    def _touch(self) -> None:
        self._state = ItemState.DIRTY

    def set(self, value: Any) -> CacheItem:
        """Set the item's value locally (persist with pool.save())."""
        self._value = value
        self._touch()
        return self

    def set_tags(self, tags: Iterable[str] | str | None) -> CacheItem:
        """Replace the item's tag set."""
        self._tags = _normalize_tags(tags)
        self._touch()
        return self

    def add_tags(self, tags: Iterable[str] | str) -> CacheItem:
        self._tags = self._tags | _normalize_tags(tags)
        self._touch()
        return self

    def remove_tags(self, tags: Iterable[str] | str) -> CacheItem:
        self._tags = self._tags - _normalize_tags(tags)
        self._touch()
        return self

    def expires_at(self, expiration: datetime | float | int | None) -> CacheItem:
        """Set an absolute expiration (datetime or UNIX timestamp); None means never."""
        if expiration is None:
            self._expiration = None
        elif isinstance(expiration, datetime):
            self._expiration = expiration.timestamp()
        else:
            self._expiration = float(expiration)
        self._touch()
        return self

    def expires_after(self, ttl: timedelta | int | float | None) -> CacheItem:
        """
        Set a relative time-to-live.

        The TTL is converted to an absolute timestamp immediately. None or a
        non-positive TTL means the item never expires.
        """
        if isinstance(ttl, timedelta):
            ttl = ttl.total_seconds()
        if ttl is None or ttl <= 0:
            self._expiration = None
        else:
            self._expiration = time.time() + ttl
        self._touch()
        return self

    def increment(self, by: int = 1) -> CacheItem:
        """Add an integer delta to an integer-valued item."""
        delta = _coerce_int(by, "Increment step")
        current = _coerce_int(self.get(), f"Value of '{self._key}'")
        return self.set(current + delta)

    def decrement(self, by: int = 1) -> CacheItem:
        delta = _coerce_int(by, "Decrement step")
        return self.increment(-delta)

    # ------------ Pool binding (used by CachePool) ------------

    def _bind_hit(self, pool_name: str, payload: dict[str, Any]) -> None:
        self._pool_name = pool_name
        self._value = payload.get(VALUE_FIELD)
        expiration = payload.get(EXPIRATION_FIELD)
        self._expiration = float(expiration) if expiration is not None else None
        self._tags = _normalize_tags(payload.get(TAGS_FIELD) or ())
        self._persisted_tags = self._tags
        self._state = ItemState.HIT

    def _bind_miss(self, pool_name: str, persisted_tags: Iterable[str] = ()) -> None:
        self._pool_name = pool_name
        self._value = None
        self._expiration = None
        self._tags = frozenset()
        self._persisted_tags = frozenset(persisted_tags)
        self._state = ItemState.MISS

    def _adopt(self, pool_name: str) -> None:
        """Attach an unbound item to the pool saving it."""
        if self._pool_name is None:
            self._pool_name = pool_name

    def _mark_persisted(self) -> None:
        self._persisted_tags = self._tags
        self._state = ItemState.PERSISTED

    def to_payload(self) -> dict[str, Any]:
        """Wrap the item for storage at the driver layer."""
        return {
            VALUE_FIELD: self._value,
            EXPIRATION_FIELD: self._expiration,
            TAGS_FIELD: sorted(self._tags),
        }
