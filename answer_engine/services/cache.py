"""Request-independent caches: bounded in-memory TTL maps and an optional
JSON-on-disk layer.

Values must be JSON-serializable so either layer can hold them. Concurrent
writers race benignly: last write wins.
"""
from __future__ import annotations

import json
import time
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from answer_engine.config import settings

CACHE_VERSION = 1


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryTTLCache:
    """Bounded map; the oldest entry is evicted first, expired entries drop on read."""

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl is None else ttl
        self._data.pop(key, None)
        self._data[key] = (self._clock() + ttl, value)
        while len(self._data) > self.max_entries:
            self._data.popitem(last=False)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class FileCache:
    """One JSON file per key under ``directory``; unreadable or expired files are misses."""

    def __init__(self, directory: str | Path, ttl_seconds: float):
        self.directory = Path(directory)
        self.ttl_seconds = ttl_seconds

    def _path(self, key: str) -> Path:
        digest = sha256(f"v{CACHE_VERSION}|{key}".encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

        if not isinstance(payload, dict) or payload.get("version") != CACHE_VERSION:
            return None

        stored_at_raw = payload.get("stored_at")
        if not isinstance(stored_at_raw, str):
            return None
        try:
            stored_at = datetime.fromisoformat(stored_at_raw)
        except ValueError:
            return None
        if stored_at.tzinfo is None:
            stored_at = stored_at.replace(tzinfo=timezone.utc)

        ttl = payload.get("ttl", self.ttl_seconds)
        if not isinstance(ttl, (int, float)) or ttl <= 0:
            return None
        if _utc_now() > stored_at + timedelta(seconds=ttl):
            return None
        return payload.get("value")

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        path = self._path(key)
        payload = {
            "version": CACHE_VERSION,
            "key": key,
            "stored_at": _utc_now().isoformat(),
            "ttl": self.ttl_seconds if ttl is None else ttl,
            "value": value,
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, ensure_ascii=True), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"File cache write failed for {path.name}: {e}")


class LayeredCache:
    """Persistent layer first (when present), memory second; writes go to both."""

    def __init__(self, memory: MemoryTTLCache, persistent: FileCache | None = None):
        self.memory = memory
        self.persistent = persistent

    def get(self, key: str) -> Any | None:
        if self.persistent is not None:
            value = self.persistent.get(key)
            if value is not None:
                return value
        return self.memory.get(key)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if self.persistent is not None:
            self.persistent.set(key, value, ttl)
        self.memory.set(key, value, ttl)

    def clear(self) -> None:
        self.memory.clear()


def _build(name: str, ttl_seconds: float) -> LayeredCache:
    persistent = None
    if settings.persistent_cache_enabled:
        persistent = FileCache(Path(settings.persistent_cache_dir) / name, ttl_seconds)
    return LayeredCache(MemoryTTLCache(settings.cache_max_entries, ttl_seconds), persistent)


page_cache = _build("pages", settings.page_cache_ttl_seconds)
search_cache = _build("search", settings.search_cache_ttl_seconds)
embedding_cache = _build("embeddings", settings.embed_cache_ttl_seconds)


def clear_all() -> None:
    for cache in (page_cache, search_cache, embedding_cache):
        cache.clear()
