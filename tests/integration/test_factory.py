"""
tagcache - Pool Factory Integration Tests

Tests building connected pools from finalized configurations: driver lookup,
namespace defaults, alias sharing and isolation of failing pools.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from tagcache.cache import available_drivers, build_pools, create_pool, get_driver_class
from tagcache.cache.backends.files import FileDriver
from tagcache.cache.backends.memory import MemoryDriver
from tagcache.config.schemas import AliasPoolConfig, FinalizedConfig, OwnedPoolConfig, PoolContext
from tagcache.errors import ConfigurationError


class TestDriverLookup:
    def test_available_drivers(self) -> None:
        assert available_drivers() == ["files", "memcached", "memory", "redis"]

    def test_get_driver_class(self) -> None:
        assert get_driver_class("memory") is MemoryDriver
        assert get_driver_class("files") is FileDriver

    def test_unknown_driver(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            get_driver_class("nosuch")
        assert exc_info.value.details["supported"] == available_drivers()

    def test_missing_client_library(self) -> None:
        with patch.dict("sys.modules", {"tagcache.cache.backends.memcached": None}):
            with pytest.raises(ConfigurationError):
                get_driver_class("memcached")


class TestCreatePool:
    async def test_namespace_defaults_to_pool_name(self) -> None:
        pool = await create_pool("object", OwnedPoolConfig(type="memory", enabled=True))

        assert pool.name == "object"
        assert pool.driver.namespace == "object"
        assert pool.fallback is False

    async def test_explicit_options(self, temp_cache_dir: str) -> None:
        config = OwnedPoolConfig(type="files", enabled=True, options={"path": temp_cache_dir, "namespace": "pages"})
        pool = await create_pool("page", config)

        assert isinstance(pool.driver, FileDriver)
        assert pool.driver.directory == Path(temp_cache_dir) / "pages"

    async def test_invalid_options(self) -> None:
        with pytest.raises(ConfigurationError):
            await create_pool("object", OwnedPoolConfig(type="memory", enabled=True, options={"max_size": 0}))

    async def test_no_driver(self) -> None:
        with pytest.raises(ConfigurationError):
            await create_pool("object", OwnedPoolConfig(type=None))

    async def test_unreachable_backend_falls_back(self) -> None:
        config = OwnedPoolConfig(
            type="redis",
            enabled=True,
            options={"url": "redis://127.0.0.1:1/0", "connect_timeout": 0.5, "socket_timeout": 0.5},
        )
        pool = await create_pool("object", config)
        try:
            assert pool.fallback is True
            item = await pool.get_item("key1")
            assert item.is_hit() is False
            assert await pool.save(item.set("v")) is False
        finally:
            await pool.close()


class TestBuildPools:
    async def test_build_with_alias(self) -> None:
        config = FinalizedConfig(
            pools={
                "object": OwnedPoolConfig(type="memory", enabled=True),
                "transient": AliasPoolConfig(alias_of=PoolContext.OBJECT),
                "page": OwnedPoolConfig(type=None, enabled=False),
            }
        )
        pools = await build_pools(config)

        assert pools["object"] is not None
        assert pools["transient"] is pools["object"]
        assert pools["page"] is None

    async def test_alias_chain_resolves_regardless_of_order(self) -> None:
        config = FinalizedConfig(
            pools={
                "transient": AliasPoolConfig(alias_of=PoolContext.OBJECT),
                "object": AliasPoolConfig(alias_of=PoolContext.PAGE),
                "page": OwnedPoolConfig(type="memory", enabled=True),
            }
        )
        pools = await build_pools(config)

        assert pools["page"] is not None
        assert pools["object"] is pools["page"]
        assert pools["transient"] is pools["page"]

    async def test_alias_cycle_disables_pools(self) -> None:
        config = FinalizedConfig(
            pools={
                "object": AliasPoolConfig(alias_of=PoolContext.TRANSIENT),
                "transient": AliasPoolConfig(alias_of=PoolContext.OBJECT),
                "page": OwnedPoolConfig(type="memory", enabled=True),
            }
        )
        pools = await build_pools(config)

        assert pools["object"] is None
        assert pools["transient"] is None
        assert pools["page"] is not None

    async def test_alias_of_disabled_context(self) -> None:
        config = FinalizedConfig(pools={"transient": AliasPoolConfig(alias_of=PoolContext.PAGE)})
        pools = await build_pools(config)
        assert pools["transient"] is None

    async def test_failing_pool_isolated(self) -> None:
        config = FinalizedConfig(
            pools={
                "object": OwnedPoolConfig(type="memory", enabled=True, options={"max_size": -3}),
                "page": OwnedPoolConfig(type="memory", enabled=True),
            }
        )
        pools = await build_pools(config)

        assert pools["object"] is None
        assert pools["page"] is not None

    async def test_disabled_pool_not_built(self) -> None:
        config = FinalizedConfig(pools={"object": OwnedPoolConfig(type="memory", enabled=False)})
        pools = await build_pools(config)
        assert pools["object"] is None
