"""Redis cache backend for sharing permission sets across processes."""

from __future__ import annotations

from typing import Any, Iterable, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..exceptions import CacheBackendError
from .base import BaseCacheBackend


class RedisCacheBackend(BaseCacheBackend):
    """Redis-based cache with tag sets and ``SCAN`` pattern deletion."""

    supports_tags = True
    supports_patterns = True
    supports_clear = True

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        tag_prefix: str = "rolegate_tag:",
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisCacheBackend")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.tag_prefix = tag_prefix
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        try:
            await self._redis.ping()
        except redis.RedisError as exc:
            raise CacheBackendError(f"Redis unavailable: {exc}") from exc

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        client = await self._client()
        try:
            return await client.get(key)
        except redis.RedisError as exc:
            raise CacheBackendError(f"Redis GET failed: {exc}") from exc

    async def set(
        self, key: str, value: str, ttl: Optional[int] = None, tags: Iterable[str] = ()
    ) -> None:
        client = await self._client()
        try:
            async with client.pipeline(transaction=True) as pipe:
                if ttl:
                    pipe.setex(key, ttl, value)
                else:
                    pipe.set(key, value)
                for tag in tags:
                    pipe.sadd(f"{self.tag_prefix}{tag}", key)
                await pipe.execute()
        except redis.RedisError as exc:
            raise CacheBackendError(f"Redis SET failed: {exc}") from exc

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        client = await self._client()
        try:
            await client.delete(*keys)
        except redis.RedisError as exc:
            raise CacheBackendError(f"Redis DEL failed: {exc}") from exc

    async def delete_pattern(self, pattern: str) -> None:
        client = await self._client()
        try:
            keys = [key async for key in client.scan_iter(match=pattern)]
            if keys:
                await client.delete(*keys)
        except redis.RedisError as exc:
            raise CacheBackendError(f"Redis pattern delete failed: {exc}") from exc

    async def invalidate_tags(self, tags: Iterable[str]) -> None:
        client = await self._client()
        try:
            for tag in tags:
                tag_key = f"{self.tag_prefix}{tag}"
                keys = await client.smembers(tag_key)
                await client.delete(tag_key, *keys)
        except redis.RedisError as exc:
            raise CacheBackendError(f"Redis tag invalidation failed: {exc}") from exc

    async def clear(self) -> None:
        """Flush the configured Redis database."""
        client = await self._client()
        try:
            await client.flushdb()
        except redis.RedisError as exc:
            raise CacheBackendError(f"Redis FLUSHDB failed: {exc}") from exc
