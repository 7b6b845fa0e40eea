"""
tagcache - Tag Index

Reverse mapping from tag to the set of keys carrying it, so that
"delete everything tagged X" does not require scanning the backend.

Invariant: a key is listed under tag T if and only if the item persisted under
that key lists T among its tags. Every write reconciles the full tag set of
the key (symmetric difference), and empty buckets are pruned.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class TagIndex:
    """In-memory tag -> keys index with a key -> tags companion map."""

    def __init__(self) -> None:
        self._buckets: dict[str, set[str]] = {}
        self._key_tags: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, tag: object) -> bool:
        return tag in self._buckets

    @property
    def tags(self) -> list[str]:
        return sorted(self._buckets)

    def keys_for(self, tag: str) -> frozenset[str]:
        return frozenset(self._buckets.get(tag, ()))

    def tags_for(self, key: str) -> frozenset[str]:
        return frozenset(self._key_tags.get(key, ()))

    def add_or_update(self, key: str, old_tags: Iterable[str], new_tags: Iterable[str]) -> None:
        """Move key from buckets in old_tags - new_tags into buckets in new_tags - old_tags."""
        old = set(old_tags)
        new = set(new_tags)

        for tag in old - new:
            self._discard(tag, key)
        # Tags present on both sides are re-added too, repairing a stale bucket
        for tag in new:
            self._buckets.setdefault(tag, set()).add(key)

        # Keep the companion map in step with the buckets
        current = (self._key_tags.get(key, set()) - old) | new
        if current:
            self._key_tags[key] = current
        else:
            self._key_tags.pop(key, None)

    def delete_key(self, key: str, tags: Iterable[str] | None = None) -> None:
        """Remove key from each bucket in tags (all of its known buckets when tags is None)."""
        known = self._key_tags.pop(key, set())
        targets = known if tags is None else set(tags) | known
        for tag in targets:
            self._discard(tag, key)

    def delete_by_tag(self, tag: str) -> list[str]:
        return self.delete_by_tags([tag])

    def delete_by_tags(self, tags: Iterable[str]) -> list[str]:
        """
        Drop the buckets of the given tags and return their keys.

        Each key is returned once even when it sits under several requested
        tags, and is removed from every other bucket it belonged to: the caller
        deletes these keys from the backend.
        """
        keys: set[str] = set()
        for tag in set(tags):
            keys |= self._buckets.pop(tag, set())

        for key in keys:
            self.delete_key(key)

        return sorted(keys)

    def clear(self) -> None:
        self._buckets.clear()
        self._key_tags.clear()

    def _discard(self, tag: str, key: str) -> None:
        bucket = self._buckets.get(tag)
        if bucket is None:
            return
        bucket.discard(key)
        if not bucket:
            del self._buckets[tag]

    # ------------ Serialization (for drivers that persist tag metadata) ------------

    def to_dict(self) -> dict[str, list[str]]:
        return {tag: sorted(keys) for tag, keys in sorted(self._buckets.items())}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TagIndex:
        index = cls()
        for tag, keys in (data or {}).items():
            if not isinstance(tag, str) or not isinstance(keys, list):
                continue
            for key in keys:
                if isinstance(key, str) and key:
                    index._buckets.setdefault(tag, set()).add(key)
                    index._key_tags.setdefault(key, set()).add(tag)
        return index
