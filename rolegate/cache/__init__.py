"""Cache backend factory and permission cache."""

from __future__ import annotations

import os
from typing import Optional

from ..config import RbacConfig, load_config
from .base import BaseCacheBackend
from .inmemory import InMemoryCacheBackend
from .keys import CacheKeyGenerator
from .permission_cache import PermissionCache


def get_cache_backend(
    backend: Optional[str] = None, config: Optional[RbacConfig] = None
) -> BaseCacheBackend:
    """Factory function to get the configured cache backend."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("ROLEGATE_CACHE_BACKEND")
        or config.cache.backend
    ).lower()

    if backend == "memory":
        return InMemoryCacheBackend()
    elif backend == "redis":
        from .redis import RedisCacheBackend

        redis_conf = config.cache.redis
        return RedisCacheBackend(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            tag_prefix=f"{config.cache.prefix}_tag:",
        )
    else:
        raise ValueError(f"Unsupported cache backend: {backend}")


def get_cache(
    backend: Optional[str] = None, config: Optional[RbacConfig] = None
) -> PermissionCache:
    """Build a :class:`PermissionCache` on the configured backend."""

    config = config or load_config()
    return PermissionCache(get_cache_backend(backend, config), config.cache)


__all__ = [
    "BaseCacheBackend",
    "CacheKeyGenerator",
    "InMemoryCacheBackend",
    "PermissionCache",
    "get_cache",
    "get_cache_backend",
]
