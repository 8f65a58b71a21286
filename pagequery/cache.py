"""
Cache stores for fetched resources.

A store maps an exact request id (including any query_mode suffix) to the
unwrapped response body. get() raises on a miss; the orchestrator treats
every failure of get() as a miss and every failure of put() as a no-op.

FileCacheStore persists one JSON document per key:
    <cache_dir>/<db_name>/<sha256(key)>.json  ->  {"_id": key, "data": ..., "stored_at": ...}
Writes are atomic: per-writer .tmp -> fsync -> replace.
"""

import asyncio
import copy
import hashlib
import json
import os
import threading
import time
from abc import ABC, abstractmethod
from functools import partial
from pathlib import Path
from typing import Any

from shared.logging import get_logger

from .errors import CacheError, CacheMiss

log = get_logger("pagequery", "cache")


class CacheStore(ABC):
    """Asynchronous key-value store keyed by request id."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the cached value or raise CacheMiss / CacheError."""

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store a value, raising CacheError on failure."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""


class MemoryCacheStore(CacheStore):
    """
    In-process store, lives as long as the session.

    Values are deep-copied in and out, so mutating published data never
    alters what is cached.
    """

    def __init__(self):
        self._entries: dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        try:
            return copy.deepcopy(self._entries[key])
        except KeyError:
            raise CacheMiss(key) from None

    async def put(self, key: str, value: Any) -> None:
        self._entries[key] = copy.deepcopy(value)

    async def clear(self) -> None:
        self._entries.clear()

    async def keys(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


async def run_in_executor(func, *args, **kwargs):
    """Run a blocking function in the default thread pool executor."""
    loop = asyncio.get_running_loop()
    if kwargs:
        func = partial(func, **kwargs)
    return await loop.run_in_executor(None, func, *args)


class FileCacheStore(CacheStore):
    """
    Persistent store of JSON documents on the local filesystem.

    Entries are namespaced by db_name so separate applications sharing a
    cache directory never see each other's keys.
    """

    def __init__(self, cache_dir: str = "data/cache", db_name: str = "pagequery-cache"):
        self.db_name = db_name
        self.root = Path(cache_dir) / db_name

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.root / f"{digest}.json"

    async def get(self, key: str) -> Any:
        return await run_in_executor(self._read, key)

    async def put(self, key: str, value: Any) -> None:
        await run_in_executor(self._write, key, value)

    async def clear(self) -> None:
        await run_in_executor(self._clear)

    async def keys(self) -> list[str]:
        """List the keys currently stored."""
        return await run_in_executor(self._keys)

    def _read(self, key: str) -> Any:
        path = self.path_for(key)
        if not path.exists():
            raise CacheMiss(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheError(f"unreadable cache entry for {key}: {e}") from e

        if not isinstance(document, dict) or document.get("_id") != key or "data" not in document:
            raise CacheMiss(key)
        return document["data"]

    def _write(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        # One temp file per writer thread; concurrent puts of a key never share it
        temp_path = path.with_name(f"{path.stem}.{os.getpid()}.{threading.get_ident()}.tmp")
        document = {"_id": key, "data": value, "stored_at": time.time()}

        try:
            payload = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise CacheError(f"value for {key} is not JSON serializable: {e}") from e

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise CacheError(f"failed to write cache entry for {key}: {e}") from e

        log.debug("pagequery.cache.stored", key=key, bytes=len(payload))

    def _clear(self) -> None:
        if not self.root.exists():
            return
        removed = 0
        for path in self.root.glob("*.json"):
            path.unlink()
            removed += 1
        log.info("pagequery.cache.cleared", db_name=self.db_name, entries=removed)

    def _keys(self) -> list[str]:
        if not self.root.exists():
            return []
        keys = []
        for path in sorted(self.root.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    keys.append(json.load(f)["_id"])
            except (OSError, ValueError, KeyError, TypeError):
                log.warning("pagequery.cache.unreadable_entry", path=str(path))
        return keys
