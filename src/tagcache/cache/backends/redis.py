"""
tagcache - Redis Driver

Asynchronous Redis driver with:
- JSON serialization for payloads
- Absolute expiration via SET ... EXAT
- Namespace prefixing so several pools can share one server

Requires: redis>=5.0 with asyncio support

Example:
    driver = RedisDriver({"url": "redis://localhost:6379/0", "namespace": "object"})
    await driver.connect()
    await driver.write("greeting", {"value": "hello"}, expiration=None)
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import Field, field_validator

from ...errors import CacheConnectionError
from ..interface import CacheDriver, DriverOptions, DriverStats
from ..item import CacheItem

logger = logging.getLogger(__name__)

try:
    from redis.asyncio import Redis
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Redis async client is required but not installed. "
        "Install with: pip install 'redis>=5.0.0' or add 'redis' to your dependencies."
    ) from e


class RedisItem(CacheItem):
    """Cache item produced by redis-backed pools."""


class RedisOptions(DriverOptions):
    """Options accepted by the redis driver."""

    url: str = Field(default="redis://localhost:6379/0", description="redis:// or rediss:// connection URL")
    max_connections: int = Field(default=10, ge=1, description="Connection pool size")
    socket_timeout: float = Field(default=5.0, gt=0, description="Socket timeout in seconds")
    connect_timeout: float = Field(default=10.0, gt=0, description="Connect timeout in seconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("url must use the redis://, rediss:// or unix:// scheme")
        return v


class RedisDriver(CacheDriver):
    """
    Redis driver with JSON serialization.

    Notes:
    - Keys are prefixed with the configured namespace to avoid collisions.
    - Payloads are stored as UTF-8 JSON strings.
    - Tag metadata is stored in Redis as well (persists_tags=True).
    """

    name = "redis"
    item_class = RedisItem
    Options = RedisOptions
    persists_tags = True

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        super().__init__(options)

        # Lazy connection; the client connects on first command
        self._client = Redis.from_url(  # type: ignore[call-overload]
            url=self.options.url,
            decode_responses=True,
            max_connections=self.options.max_connections,
            socket_timeout=self.options.socket_timeout,
            socket_connect_timeout=self.options.connect_timeout,
        )

    # ------------ Helpers ------------

    def _make_key(self, key: str) -> str:
        """Create namespaced key."""
        return f"{self.namespace}:{key}"

    @staticmethod
    def _to_json(value: Any) -> str:
        """Serialize value to JSON string."""
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))

    @staticmethod
    def _from_json(data: str | bytes | None) -> Any | None:
        """Deserialize JSON string to Python object. Returns None if data is None."""
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            return json.loads(data)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(
                f"Failed to decode JSON from cache, treating entry as absent: {e}",
                extra={"data_preview": data[:100], "error": str(e)},
            )
            return None

    # ------------ Driver contract ------------

    async def connect(self) -> None:
        try:
            await self._client.ping()
            self.connected = True
            logger.info(f"Connected to Redis for namespace '{self.namespace}'")
        except Exception as e:
            raise CacheConnectionError("redis", {"url": self.options.url, "error": str(e)}) from e

    async def read(self, key: str) -> Any | None:
        try:
            data = await self._client.get(self._make_key(key))
            return self._from_json(data)
        except Exception as e:
            logger.error(
                f"Failed to get key '{key}' from Redis: {e}",
                extra={"key": key, "namespace": self.namespace, "error": str(e)},
                exc_info=True,
            )
            return None

    async def write(self, key: str, payload: Any, expiration: float | None) -> bool:
        ns_key = self._make_key(key)
        try:
            data = self._to_json(payload)
        except (TypeError, ValueError) as e:
            logger.error(
                f"Failed to serialize value for key '{key}': {e}",
                extra={"key": key, "value_type": type(payload).__name__, "error": str(e)},
            )
            return False

        try:
            if expiration is None:
                res = await self._client.set(name=ns_key, value=data)
            else:
                res = await self._client.set(name=ns_key, value=data, exat=max(1, int(expiration)))
            return bool(res)
        except Exception as e:
            logger.error(
                f"Failed to set key '{key}' in Redis: {e}",
                extra={"key": key, "namespace": self.namespace, "expiration": expiration, "error": str(e)},
                exc_info=True,
            )
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._client.delete(self._make_key(key))
            return True
        except Exception as e:
            logger.error(
                f"Failed to delete key '{key}' from Redis: {e}",
                extra={"key": key, "namespace": self.namespace, "error": str(e)},
                exc_info=True,
            )
            return False

    async def clear_all(self) -> bool:
        """
        Clear all entries under the namespace.

        Implementation: SCAN match "<namespace>:*" and DEL in batches.
        """
        try:
            pattern = f"{self.namespace}:*"
            cursor = 0
            total_deleted = 0
            batch_size = 1000

            while True:
                cursor, keys = await self._client.scan(cursor=cursor, match=pattern, count=batch_size)
                if keys:
                    total_deleted += await self._client.delete(*keys)
                if cursor == 0:
                    break

            logger.info(f"Cleared {total_deleted} keys from namespace '{self.namespace}'")
            return True
        except Exception as e:
            logger.error(
                f"Failed to clear cache for namespace '{self.namespace}': {e}",
                extra={"namespace": self.namespace, "error": str(e)},
                exc_info=True,
            )
            return False

    async def stats(self) -> DriverStats:
        try:
            server = await self._client.info(section="server")
            memory = await self._client.info(section="memory")
        except Exception as e:
            # INFO may be restricted; keep minimal stats
            logger.warning(f"Failed to get Redis INFO (restricted or unavailable): {e}", extra={"error": str(e)})
            return DriverStats(uptime_seconds=self.uptime(), raw={"backend": "redis", "namespace": self.namespace})

        return DriverStats(
            uptime_seconds=int(server.get("uptime_in_seconds", 0)),
            version=str(server.get("redis_version", "unknown")),
            size_bytes=int(memory.get("used_memory", 0)),
            raw={"backend": "redis", "namespace": self.namespace, **server},
        )

    async def close(self) -> None:
        """Close the Redis client and release resources."""
        try:
            await self._client.aclose()
            logger.info(f"Closed Redis driver for namespace '{self.namespace}'")
        except Exception as e:
            logger.error(
                f"Error closing Redis client: {e}", extra={"namespace": self.namespace, "error": str(e)}, exc_info=True
            )
        finally:
            await super().close()
