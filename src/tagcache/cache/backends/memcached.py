"""
tagcache - Memcached Driver

Memcached driver built on pymemcache's HashClient (consistent hashing across
servers). pymemcache is a blocking client, so every call runs in a worker
thread via asyncio.to_thread.

Expiration semantics: memcached treats an expire value up to 30 days
(2,592,000 seconds) as a relative duration and anything larger as an absolute
UNIX timestamp. Relative TTLs above that threshold are therefore sent as
now + ttl so they are never misread as a timestamp in the past.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
import time
from typing import Any

from pydantic import Field, field_validator

from ...errors import CacheConnectionError
from ..interface import CacheDriver, DriverOptions, DriverStats
from ..item import CacheItem

logger = logging.getLogger(__name__)

try:
    from pymemcache.client.base import Client
    from pymemcache.client.hash import HashClient
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "pymemcache is required for the memcached driver. Install with: pip install 'pymemcache>=4.0.0'"
    ) from e

# Largest expire value memcached interprets as a relative duration
MAX_RELATIVE_TTL = 2_592_000

# Memcached key limit (bytes)
MAX_KEY_LENGTH = 250

DEFAULT_SERVER = ("127.0.0.1", 11211)

_SERVER_RE = re.compile(r"^(.*?):(\d+)$")
_UNSAFE_KEY_RE = re.compile(r"[\s\x00-\x1f\x7f]")


def parse_servers(servers: str | list[str] | None) -> list[tuple[str, int]]:
    """
    Parse "host:port, host:port" (or a list of "host:port") into tuples.

    Raises:
        ValueError: If an entry is not host:port
    """
    if not servers:
        return []
    entries = servers.split(",") if isinstance(servers, str) else list(servers)

    parsed = []
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        match = _SERVER_RE.match(entry)
        if not match or not match.group(1):
            raise ValueError(f"Invalid memcached server '{entry}', expected host:port")
        parsed.append((match.group(1), int(match.group(2))))
    return parsed


def native_expire(expiration: float | None, now: float | None = None) -> int | None:
    """
    Translate an absolute expiration into memcached's expire argument.

    Returns:
        0 for never, the relative TTL when it is within MAX_RELATIVE_TTL,
        now + ttl above it, or None when the expiration is already past
    """
    if expiration is None:
        return 0
    if now is None:
        now = time.time()
    ttl = int(round(expiration - now))
    if ttl <= 0:
        return None
    if ttl > MAX_RELATIVE_TTL:
        return int(now) + ttl
    return ttl


class MemcachedItem(CacheItem):
    """Cache item produced by memcached-backed pools."""


class MemcachedOptions(DriverOptions):
    """Options accepted by the memcached driver."""

    servers: str | list[str] = Field(default="127.0.0.1:11211", description="Comma separated host:port list")
    connect_timeout: float = Field(default=10.0, gt=0, description="Connect timeout in seconds")
    timeout: float = Field(default=5.0, gt=0, description="Socket timeout in seconds")
    retry_attempts: int = Field(default=2, ge=0, description="Failures before a server is marked dead")
    retry_timeout: float = Field(default=1.0, ge=0, description="Seconds between retries of a failing server")
    dead_timeout: float = Field(default=60.0, ge=0, description="Seconds a dead server is left out")

    @field_validator("servers")
    @classmethod
    def validate_servers(cls, v: str | list[str]) -> str | list[str]:
        parse_servers(v)
        return v


class MemcachedDriver(CacheDriver):
    """
    Memcached driver.

    Notes:
    - Keys are prefixed with the namespace; keys that memcached cannot store
      (too long, whitespace, control or non-ASCII characters) are hashed.
    - clear_all() issues flush_all, which wipes every key on the servers.
    - An unreachable server sets the fallback flag instead of failing.
    """

    name = "memcached"
    item_class = MemcachedItem
    Options = MemcachedOptions
    persists_tags = True

    def __init__(self, options: dict[str, Any] | None = None):
        super().__init__(options)
        self.servers = parse_servers(self.options.servers) or [DEFAULT_SERVER]
        self._client: HashClient | None = None

    def _make_key(self, key: str) -> str:
        full_key = f"{self.namespace}:{key}"
        if (
            len(full_key.encode("utf-8")) > MAX_KEY_LENGTH
            or not full_key.isascii()
            or _UNSAFE_KEY_RE.search(full_key)
        ):
            return f"{self.namespace}:sha1:{hashlib.sha1(full_key.encode('utf-8')).hexdigest()}"
        return full_key

    def _server_client(self, server: tuple[str, int]) -> Client:
        return Client(server, connect_timeout=self.options.connect_timeout, timeout=self.options.timeout)

    def _probe(self, server: tuple[str, int]) -> bool:
        client = self._server_client(server)
        try:
            client.version()
            return True
        except Exception as e:
            logger.warning(
                f"Memcached server {server[0]}:{server[1]} unreachable: {e}",
                extra={"server": f"{server[0]}:{server[1]}", "error": str(e)},
            )
            return False
        finally:
            client.close()

    async def connect(self) -> None:
        reachable = [await asyncio.to_thread(self._probe, server) for server in self.servers]
        if not all(reachable):
            self.fallback = True

        try:
            self._client = HashClient(
                self.servers,
                connect_timeout=self.options.connect_timeout,
                timeout=self.options.timeout,
                retry_attempts=self.options.retry_attempts,
                retry_timeout=self.options.retry_timeout,
                dead_timeout=self.options.dead_timeout,
                ignore_exc=False,
            )
        except Exception as e:
            raise CacheConnectionError("memcached", {"servers": self.options.servers, "error": str(e)}) from e

        self.connected = True
        logger.info(
            f"Memcached driver connected to {sum(reachable)}/{len(self.servers)} server(s)",
            extra={"namespace": self.namespace, "fallback": self.fallback},
        )

    def _require_client(self) -> HashClient:
        if self._client is None:
            raise CacheConnectionError("memcached", {"reason": "not connected"})
        return self._client

    async def read(self, key: str) -> Any | None:
        try:
            client = self._require_client()
            data = await asyncio.to_thread(client.get, self._make_key(key))
        except Exception as e:
            logger.error(
                f"Failed to get key '{key}' from memcached: {e}",
                extra={"key": key, "namespace": self.namespace, "error": str(e)},
            )
            return None

        if data is None:
            return None
        try:
            return json.loads(data.decode("utf-8") if isinstance(data, bytes) else data)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to decode memcached entry '{key}', treating as absent: {e}")
            return None

    async def write(self, key: str, payload: Any, expiration: float | None) -> bool:
        expire = native_expire(expiration)
        if expire is None:
            # Already expired: make sure no stale copy survives
            return await self.delete(key)

        try:
            data = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.error(
                f"Failed to serialize value for key '{key}': {e}",
                extra={"key": key, "value_type": type(payload).__name__, "error": str(e)},
            )
            return False

        try:
            client = self._require_client()
            return bool(await asyncio.to_thread(client.set, self._make_key(key), data, expire=expire, noreply=False))
        except Exception as e:
            logger.error(
                f"Failed to set key '{key}' in memcached: {e}",
                extra={"key": key, "namespace": self.namespace, "expire": expire, "error": str(e)},
            )
            return False

    async def delete(self, key: str) -> bool:
        try:
            client = self._require_client()
            # A missing key returns False from pymemcache; that is still success here
            await asyncio.to_thread(client.delete, self._make_key(key), noreply=False)
            return True
        except Exception as e:
            logger.error(
                f"Failed to delete key '{key}' from memcached: {e}",
                extra={"key": key, "namespace": self.namespace, "error": str(e)},
            )
            return False

    async def clear_all(self) -> bool:
        try:
            client = self._require_client()
            await asyncio.to_thread(client.flush_all, noreply=False)
            logger.info(f"Flushed memcached servers for namespace '{self.namespace}'")
            return True
        except Exception as e:
            logger.error(
                f"Failed to flush memcached: {e}",
                extra={"namespace": self.namespace, "error": str(e)},
            )
            return False

    def _server_stats(self) -> dict[str, dict[str, Any]]:
        collected: dict[str, dict[str, Any]] = {}
        for server in self.servers:
            client = self._server_client(server)
            try:
                raw = client.stats()
            except Exception as e:
                logger.warning(f"Failed to get stats from {server[0]}:{server[1]}: {e}")
                continue
            finally:
                client.close()
            collected[f"{server[0]}:{server[1]}"] = {
                (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
                for k, v in raw.items()
            }
        return collected

    async def stats(self) -> DriverStats:
        per_server = await asyncio.to_thread(self._server_stats)
        if not per_server:
            return DriverStats(uptime_seconds=0, raw={"backend": "memcached", "servers": {}})

        first = next(iter(per_server.values()))
        return DriverStats(
            uptime_seconds=int(first.get("uptime", 0)),
            version=str(first.get("version", "unknown")),
            size_bytes=sum(int(s.get("bytes", 0)) for s in per_server.values()),
            raw={"backend": "memcached", "servers": per_server},
        )

    async def close(self) -> None:
        if self._client is not None:
            try:
                await asyncio.to_thread(self._client.close)
            except Exception as e:
                logger.warning(f"Error closing memcached client: {e}", extra={"error": str(e)})
            self._client = None
        await super().close()
