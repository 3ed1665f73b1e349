"""Base cache backend interface for the permission cache."""

from __future__ import annotations

import abc
from typing import Iterable, Optional


class BaseCacheBackend(metaclass=abc.ABCMeta):
    """Abstract key/value store with TTLs.

    Backends signal failures with :class:`~rolegate.exceptions.CacheBackendError`;
    the permission cache turns those into misses.
    """

    supports_tags: bool = False
    supports_patterns: bool = False
    supports_clear: bool = False

    async def connect(self) -> None:
        """Open connection to the backend (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the backend (no-op by default)."""
        pass

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def set(
        self, key: str, value: str, ttl: Optional[int] = None, tags: Iterable[str] = ()
    ) -> None:
        """Store ``value``; a ``ttl`` of ``None`` or 0 keeps it until deleted."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, *keys: str) -> None:
        raise NotImplementedError

    async def delete_pattern(self, pattern: str) -> None:
        """Delete every key matching a glob ``pattern``."""
        raise NotImplementedError

    async def invalidate_tags(self, tags: Iterable[str]) -> None:
        """Delete every key stored under any of ``tags``."""
        raise NotImplementedError

    async def clear(self) -> None:
        """Drop every entry held by the backend."""
        raise NotImplementedError
