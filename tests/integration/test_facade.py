"""
tagcache - Cache Facade Integration Tests

End-to-end scenarios through CacheFacade: routing, read/add/delete, counters,
tag invalidation across pools, content events, settings bootstrap and stats.
"""

import json
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from tagcache import CacheFacade, ContentEvent
from tagcache.config.schemas import AliasPoolConfig, FinalizedConfig, OwnedPoolConfig, PoolContext, TagCacheSettings
from tagcache.errors import CacheValueError

SITE = "https://example.com"


@pytest.fixture
async def facade(temp_cache_dir: str) -> AsyncGenerator[CacheFacade, None]:
    config = FinalizedConfig(
        pools={
            "page": OwnedPoolConfig(type="files", enabled=True, options={"path": temp_cache_dir}),
            "object": OwnedPoolConfig(type="memory", enabled=True),
            "transient": OwnedPoolConfig(type="memory", enabled=True),
        }
    )
    async with await CacheFacade.from_config(config) as cache:
        yield cache


class TestCacheFacade:
    """Test suite for CacheFacade."""

    async def test_add_read_delete_by_tags(self, facade: CacheFacade) -> None:
        assert await facade.add("obj:page1", "<html>", tags=["/home"]) is True
        assert await facade.read("obj:page1") == "<html>"

        assert await facade.delete(tags=["/home"]) is True
        assert await facade.read("obj:page1") is False

    async def test_read_miss_returns_false(self, facade: CacheFacade) -> None:
        assert await facade.read("nothing-here") is False

    async def test_routing(self, facade: CacheFacade) -> None:
        await facade.add("session_transient_1", "t")
        await facade.add("user:1", "o")

        transient = facade.get_instance("transient")
        obj = facade.get_instance(PoolContext.OBJECT)
        assert await transient.has_item("session_transient_1")
        assert not await obj.has_item("session_transient_1")
        assert await obj.has_item("user:1")

    async def test_explicit_context(self, facade: CacheFacade) -> None:
        await facade.add("transient-looking-key", "v", context="object")

        assert await facade.read("transient-looking-key") is False
        assert await facade.read("transient-looking-key", context=PoolContext.OBJECT) == "v"

    async def test_edit_replaces_value_and_tags(self, facade: CacheFacade) -> None:
        await facade.add("user:1", {"name": "Ada"}, tags=["users"])
        await facade.edit("user:1", {"name": "Grace"}, tags=["admins"])

        assert await facade.read("user:1") == {"name": "Grace"}
        await facade.delete(tags=["users"])
        assert await facade.read("user:1") == {"name": "Grace"}

    async def test_ttl(self, facade: CacheFacade) -> None:
        await facade.add("short", "v", ttl=1)
        pool = facade.get_instance("object")
        item = await pool.get_item("short")
        assert item.expiration is not None

        await facade.add("forever", "v", ttl=-1)
        assert (await pool.get_item("forever")).expiration is None

    async def test_default_ttl(self) -> None:
        config = FinalizedConfig(pools={"object": OwnedPoolConfig(type="memory", enabled=True)})
        cache = await CacheFacade.from_config(config, default_ttl=600)

        await cache.add("key", "v")
        item = await cache.get_instance("object").get_item("key")
        assert item.expiration is not None

    async def test_edit_increase_and_decrease(self, facade: CacheFacade) -> None:
        assert await facade.edit_increase("counter") is False

        await facade.add("counter", 10)
        assert await facade.edit_increase("counter", 5) == 15
        assert await facade.edit_decrease("counter", 3) == 12
        assert await facade.read("counter") == 12

    async def test_edit_increase_non_integer(self, facade: CacheFacade) -> None:
        await facade.add("text", "hello")
        with pytest.raises(CacheValueError):
            await facade.edit_increase("text")

    async def test_delete_by_key(self, facade: CacheFacade) -> None:
        await facade.add("user:1", "a", tags=["users"])
        await facade.add("user:2", "b", tags=["users"])

        assert await facade.delete("user:1") is True
        assert await facade.read("user:1") is False
        assert await facade.read("user:2") == "b"

    async def test_delete_key_and_tags(self, facade: CacheFacade) -> None:
        await facade.add("user:1", "a")
        await facade.add("user:2", "b", tags=["users"])

        assert await facade.delete("user:1", tags=["users"]) is True
        assert await facade.read("user:2") is False

    async def test_delete_nothing_is_noop(self, facade: CacheFacade) -> None:
        await facade.add("user:1", "a")
        assert await facade.delete() is True
        assert await facade.read("user:1") == "a"

    async def test_delete_empty_key_is_noop(self, facade: CacheFacade) -> None:
        await facade.add("user:1", "a", tags=["users"])

        assert await facade.delete(key="") is True
        assert await facade.read("user:1") == "a"

        assert await facade.delete(key="", tags=["users"]) is True
        assert await facade.read("user:1") is False

    async def test_string_tag_is_one_tag(self, facade: CacheFacade) -> None:
        await facade.add("obj:page1", "<html>", tags="/home")
        await facade.add("obj:page2", "<html>", tags="/h")

        index = facade.get_instance("object").tag_index
        assert index.keys_for("/home") == frozenset({"obj:page1"})
        assert "/" not in index
        assert "h" not in index

        assert await facade.delete(tags="/home") is True
        assert await facade.read("obj:page1") is False
        assert await facade.read("obj:page2") == "<html>"

    async def test_delete_by_tags_reaches_every_pool(self, facade: CacheFacade) -> None:
        await facade.add("a_transient", "t", tags=["shared"])
        await facade.add("object-key", "o", tags=["shared"])
        page = facade.get_instance()
        item = page.new_item("/home").set("<html>").set_tags(["shared"])
        await page.save(item)

        await facade.delete(tags=["shared"])

        assert await facade.read("a_transient") is False
        assert await facade.read("object-key") is False
        assert not await page.has_item("/home")

    async def test_invalidate_paths_and_content_events(self, facade: CacheFacade) -> None:
        page = facade.get_instance("page")
        for path in ["/news/hello", "/category/news", "/about"]:
            await page.save(page.new_item(path).set(f"<html>{path}</html>").set_tags([path]))

        event = ContentEvent(
            content_id=1,
            permalink=f"{SITE}/news/hello/",
            term_links=(f"{SITE}/category/news/",),
            published_at=datetime.now(UTC) - timedelta(hours=1),
            site_url=SITE,
        )
        tags = await facade.on_content_saved(event)

        assert tags == ["/news/hello", "/category/news"]
        assert not await page.has_item("/news/hello")
        assert not await page.has_item("/category/news")
        assert await page.has_item("/about")

    async def test_on_content_published(self, facade: CacheFacade) -> None:
        page = facade.get_instance("page")
        await page.save(page.new_item("/category/news").set("<html>").set_tags(["/category/news"]))

        event = ContentEvent(content_id=1, term_links=(f"{SITE}/category/news",), site_url=SITE)
        assert await facade.on_content_published(event) == ["/category/news"]
        assert not await page.has_item("/category/news")

    async def test_flush(self, facade: CacheFacade) -> None:
        await facade.add("user:1", "a", tags=["users"])
        await facade.add("x_transient", "b")

        assert await facade.flush() is True
        assert await facade.read("user:1") is False
        assert await facade.read("x_transient") is False
        assert len(facade.get_instance("object").tag_index) == 0

    async def test_get_stats(self, facade: CacheFacade) -> None:
        await facade.add("user:1", "a", tags=["users"])
        await facade.read("user:1")

        stats = await facade.get_stats()

        assert set(stats) == {"page", "object", "transient"}
        assert stats["object"].driver == "memory"
        assert stats["object"].hits == 1
        assert stats["page"].persists_tags is True


class TestDisabledContexts:
    async def test_disabled_pool_degrades(self) -> None:
        cache = CacheFacade({})

        assert cache.get_instance("page") is None
        assert await cache.read("key") is False
        assert await cache.add("key", "v") is False
        assert await cache.edit_increase("key") is False
        assert await cache.delete("key") is False
        assert await cache.delete(tags=["t"]) is True
        assert await cache.get_stats() == {}

    async def test_alias_shares_pool(self) -> None:
        config = FinalizedConfig(
            pools={
                "object": OwnedPoolConfig(type="memory", enabled=True),
                "transient": AliasPoolConfig(alias_of=PoolContext.OBJECT),
            }
        )
        async with await CacheFacade.from_config(config) as cache:
            await cache.add("my_transient", "v")
            assert await cache.read("my_transient", context="object") == "v"

            stats = await cache.get_stats()
            assert stats["transient"] is stats["object"]


class TestBootstrap:
    async def test_from_settings_generates_snapshot(self, tmp_path: Path) -> None:
        settings_path = tmp_path / "settings.json"
        snapshot_path = tmp_path / "config.json"
        settings_path.write_text(
            json.dumps(
                {
                    "object": {"type": "memory", "memory_max_size": "50"},
                    "transient": {"type": "object"},
                    "page": {"type": "files", "files_path": str(tmp_path / "pages"), "files_bogus": 1},
                }
            )
        )
        settings = TagCacheSettings(settings_path=str(settings_path), snapshot_path=str(snapshot_path))

        async with await CacheFacade.from_settings(settings, setup_logging=True) as cache:
            assert snapshot_path.exists()
            assert cache.get_instance("object") is not None
            assert cache.get_instance("transient") is cache.get_instance("object")
            # Fail closed on the unknown option
            assert cache.get_instance("page") is None

    async def test_from_snapshot_missing(self, tmp_path: Path) -> None:
        cache = await CacheFacade.from_snapshot(tmp_path / "absent.json")
        assert cache.get_instance("object") is None

    async def test_existing_snapshot_wins(self, tmp_path: Path) -> None:
        snapshot_path = tmp_path / "config.json"
        snapshot_path.write_text(
            FinalizedConfig(pools={"object": OwnedPoolConfig(type="memory", enabled=True)}).model_dump_json()
        )
        settings_path = tmp_path / "settings.json"
        settings_path.write_text(json.dumps({"object": {"type": "disabled"}}))

        settings = TagCacheSettings(settings_path=str(settings_path), snapshot_path=str(snapshot_path))
        async with await CacheFacade.from_settings(settings) as cache:
            assert cache.get_instance("object") is not None
