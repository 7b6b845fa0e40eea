"""
tagcache - Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests.
"""

import os
from collections.abc import AsyncGenerator
from typing import Any

import pytest

from tagcache.cache.backends.memory import MemoryDriver
from tagcache.cache.pool import CachePool

# Set test environment
os.environ["TAGCACHE_ENVIRONMENT"] = "test"
os.environ["TAGCACHE_LOG_LEVEL"] = "DEBUG"


# Redis availability checker
def is_redis_available() -> bool:
    """Check if Redis server is available for testing."""
    import socket

    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("localhost", 6379))
        sock.close()
        return result == 0
    except Exception:
        return False


# Skip marker for Redis tests
redis_available = pytest.mark.skipif(not is_redis_available(), reason="Redis server not available")


@pytest.fixture
def test_redis_url() -> str:
    """Get Redis URL for testing (database 15 for isolation)."""
    return os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/15")


@pytest.fixture
async def memory_pool() -> AsyncGenerator[CachePool, None]:
    """An open pool over a fresh memory driver."""
    pool = await CachePool("object", MemoryDriver({"namespace": "test"})).open()
    yield pool
    await pool.close()


@pytest.fixture
def temp_cache_dir(tmp_path: Any) -> str:
    """Create a temporary directory for cache testing."""
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    return str(cache_dir)


@pytest.fixture
def sample_cache_data() -> dict[str, Any]:
    """Sample data for cache testing."""
    return {
        "simple_string": "hello",
        "simple_int": 42,
        "simple_float": 3.14,
        "simple_bool": True,
        "simple_none": None,
        "complex_dict": {
            "nested": {
                "key": "value",
                "number": 123,
                "list": [1, 2, 3],
            }
        },
        "complex_list": [
            {"id": 1, "name": "Alice"},
            {"id": 2, "name": "Bob"},
        ],
    }
