"""In-memory cache backend."""

from __future__ import annotations

import asyncio
import fnmatch
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

from .base import BaseCacheBackend


class InMemoryCacheBackend(BaseCacheBackend):
    """Process-local TTL cache for tests and single-process deployments."""

    supports_tags = True
    supports_patterns = True
    supports_clear = True

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._tags: Dict[str, Set[str]] = defaultdict(set)
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    async def set(
        self, key: str, value: str, ttl: Optional[int] = None, tags: Iterable[str] = ()
    ) -> None:
        expires_at = self._clock() + ttl if ttl else None
        async with self._lock:
            self._entries[key] = (value, expires_at)
            for tag in tags:
                self._tags[tag].add(key)

    async def delete(self, *keys: str) -> None:
        async with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        async with self._lock:
            for key in [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]:
                del self._entries[key]

    async def invalidate_tags(self, tags: Iterable[str]) -> None:
        async with self._lock:
            for tag in tags:
                for key in self._tags.pop(tag, set()):
                    self._entries.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._tags.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)
