"""
tagcache - File Driver

Stores one JSON document per key under <path>/<namespace>/. File names are
SHA-1 digests of the key; every write goes to a temporary file that is then
moved into place with os.replace, so readers never see a partial entry.
Blocking file I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any

from pydantic import Field

from ...errors import CacheConnectionError
from ..interface import CacheDriver, DriverOptions, DriverStats
from ..item import CacheItem

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".json"


class FileItem(CacheItem):
    """Cache item produced by file-backed pools."""


class FileOptions(DriverOptions):
    """Options accepted by the file driver."""

    path: str = Field(default="./data/cache", min_length=1, description="Base directory for cache files")
    file_mode: int = Field(default=0o644, ge=0, le=0o777, description="Permission bits for entry files")


class FileDriver(CacheDriver):
    """File-per-key driver with atomic replacement of entries."""

    name = "files"
    item_class = FileItem
    Options = FileOptions
    persists_tags = True

    def __init__(self, options: dict[str, Any] | None = None):
        super().__init__(options)
        self.directory = Path(self.options.path) / self.namespace

    def _entry_path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}{ENTRY_SUFFIX}"

    # ------------ Blocking helpers (run in a worker thread) ------------

    def _read_entry(self, key: str) -> Any | None:
        path = self._entry_path(key)
        try:
            with path.open("r", encoding="utf-8") as fh:
                entry = json.load(fh)
        except FileNotFoundError:
            return None

        expiration = entry.get("expiration")
        if expiration is not None and time.time() >= expiration:
            path.unlink(missing_ok=True)
            return None
        return entry.get("payload")

    def _write_entry(self, key: str, payload: Any, expiration: float | None) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        document = {"key": key, "expiration": expiration, "payload": payload}

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=ENTRY_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, ensure_ascii=False, separators=(",", ":"))
            os.chmod(tmp_name, self.options.file_mode)
            os.replace(tmp_name, self._entry_path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _clear_entries(self) -> int:
        if not self.directory.exists():
            return 0
        count = sum(1 for _ in self.directory.glob(f"*{ENTRY_SUFFIX}"))
        shutil.rmtree(self.directory)
        return count

    def _disk_usage(self) -> tuple[int, int]:
        if not self.directory.exists():
            return 0, 0
        files = list(self.directory.glob(f"*{ENTRY_SUFFIX}"))
        return len(files), sum(f.stat().st_size for f in files)

    # ------------ Driver contract ------------

    async def connect(self) -> None:
        try:
            await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise CacheConnectionError("files", {"path": str(self.directory), "error": str(e)}) from e
        if not os.access(self.directory, os.W_OK):
            raise CacheConnectionError("files", {"path": str(self.directory), "error": "directory is not writable"})
        self.connected = True
        logger.debug(f"File driver ready at '{self.directory}'")

    async def read(self, key: str) -> Any | None:
        try:
            return await asyncio.to_thread(self._read_entry, key)
        except (OSError, ValueError) as e:
            logger.error(
                f"Failed to read cache file for key '{key}': {e}",
                extra={"key": key, "path": str(self.directory), "error": str(e)},
            )
            return None

    async def write(self, key: str, payload: Any, expiration: float | None) -> bool:
        try:
            await asyncio.to_thread(self._write_entry, key, payload, expiration)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(
                f"Failed to write cache file for key '{key}': {e}",
                extra={"key": key, "path": str(self.directory), "error": str(e)},
            )
            return False

    async def delete(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._entry_path(key).unlink, missing_ok=True)
            return True
        except OSError as e:
            logger.error(
                f"Failed to delete cache file for key '{key}': {e}",
                extra={"key": key, "path": str(self.directory), "error": str(e)},
            )
            return False

    async def clear_all(self) -> bool:
        try:
            count = await asyncio.to_thread(self._clear_entries)
            logger.info(f"Cleared {count} cache files from '{self.directory}'")
            return True
        except OSError as e:
            logger.error(
                f"Failed to clear cache directory '{self.directory}': {e}",
                extra={"path": str(self.directory), "error": str(e)},
            )
            return False

    async def stats(self) -> DriverStats:
        entries, size_bytes = await asyncio.to_thread(self._disk_usage)
        return DriverStats(
            uptime_seconds=self.uptime(),
            version="files-1",
            size_bytes=size_bytes,
            raw={"backend": "files", "path": str(self.directory), "entries": entries},
        )
