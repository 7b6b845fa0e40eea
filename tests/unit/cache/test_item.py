"""
tagcache - Cache Item Tests

Tests the item state machine, tag mutators, expiration handling and integer
arithmetic.
"""

import time
from datetime import UTC, datetime, timedelta

import pytest

from tagcache.cache.item import CacheItem, ItemState
from tagcache.errors import CacheValueError, InvalidKeyError


class TestCacheItem:
    """Test suite for CacheItem."""

    def test_new_item_is_unbound(self) -> None:
        item = CacheItem("key1")
        assert item.key == "key1"
        assert item.state is ItemState.UNBOUND
        assert item.pool_name is None
        assert item.is_hit() is False
        assert item.get() is None

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(InvalidKeyError):
            CacheItem("")

    def test_bind_hit(self) -> None:
        item = CacheItem("key1")
        item._bind_hit("object", {"value": "v", "expiration": None, "tags": ["a", "b"]})

        assert item.is_hit()
        assert item.get() == "v"
        assert item.tags == frozenset({"a", "b"})
        assert item.persisted_tags == frozenset({"a", "b"})
        assert item.pool_name == "object"

    def test_populated_miss_becomes_dirty_not_hit(self) -> None:
        item = CacheItem("key1")
        item._bind_miss("object")
        assert item.state is ItemState.MISS
        assert item.get() is None

        item.set("value")
        assert item.state is ItemState.DIRTY
        assert item.is_hit() is False
        assert item.get() == "value"

    def test_mutating_a_hit_marks_it_dirty(self) -> None:
        item = CacheItem("key1")
        item._bind_hit("object", {"value": 1})
        item.add_tags("extra")
        assert item.state is ItemState.DIRTY

    def test_tag_mutators(self) -> None:
        item = CacheItem("key1")
        item.set_tags(["a", "b"])
        item.add_tags(["c"])
        item.remove_tags("a")
        assert item.tags == frozenset({"b", "c"})

        item.set_tags(None)
        assert item.tags == frozenset()

    def test_empty_tag_rejected(self) -> None:
        with pytest.raises(InvalidKeyError):
            CacheItem("key1").set_tags(["ok", ""])

    def test_expires_after_converts_to_absolute(self) -> None:
        before = time.time()
        item = CacheItem("key1").expires_after(60)
        assert item.expiration is not None
        assert before + 60 <= item.expiration <= time.time() + 60

        item.expires_after(timedelta(minutes=2))
        assert item.expiration >= before + 120

    @pytest.mark.parametrize("ttl", [None, 0, -1])
    def test_non_positive_ttl_never_expires(self, ttl: int | None) -> None:
        item = CacheItem("key1").expires_after(ttl)
        assert item.expiration is None
        assert item.is_expired() is False

    def test_expires_at(self) -> None:
        moment = datetime(2030, 1, 1, tzinfo=UTC)
        item = CacheItem("key1").expires_at(moment)
        assert item.expiration == moment.timestamp()
        assert item.is_expired(now=moment.timestamp()) is True
        assert item.is_expired(now=moment.timestamp() - 1) is False

    def test_increment_and_decrement(self) -> None:
        item = CacheItem("counter")
        item._bind_hit("object", {"value": 10})

        item.increment(5)
        assert item.get() == 15

        item.decrement(3)
        assert item.get() == 12

    def test_increment_accepts_integer_strings(self) -> None:
        item = CacheItem("counter")
        item._bind_hit("object", {"value": "7"})
        item.increment()
        assert item.get() == 8

    @pytest.mark.parametrize("value", ["abc", 1.5, None, True, [1]])
    def test_increment_rejects_non_integer_values(self, value: object) -> None:
        item = CacheItem("counter")
        item._bind_hit("object", {"value": value})
        with pytest.raises(CacheValueError):
            item.increment()

    def test_increment_rejects_non_integer_step(self) -> None:
        item = CacheItem("counter")
        item._bind_hit("object", {"value": 1})
        with pytest.raises(CacheValueError):
            item.increment("two")  # type: ignore[arg-type]

    def test_payload(self) -> None:
        item = CacheItem("key1").set({"a": 1}).set_tags(["z", "a"])
        assert item.to_payload() == {"value": {"a": 1}, "expiration": None, "tags": ["a", "z"]}

    def test_mark_persisted(self) -> None:
        item = CacheItem("key1").set("v").set_tags(["t"])
        item._mark_persisted()
        assert item.state is ItemState.PERSISTED
        assert item.persisted_tags == frozenset({"t"})
