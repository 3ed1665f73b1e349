"""Memoized permission lookups with explicit invalidation."""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel

from ..config import CacheConfig
from ..exceptions import CacheBackendError
from ..models import ActorId, Permission, Role
from .base import BaseCacheBackend
from .keys import CacheKeyGenerator

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class PermissionCache:
    """Caches role, permission and per-actor lookups on a backend.

    Backend failures never propagate: a failed read is a miss and a failed
    write or delete is logged and skipped. Correctness never depends on the
    cache being reachable, only freshness does.
    """

    def __init__(
        self,
        backend: BaseCacheBackend,
        config: Optional[CacheConfig] = None,
        key_generator: Optional[CacheKeyGenerator] = None,
        role_model: Type[Role] = Role,
        permission_model: Type[Permission] = Permission,
    ) -> None:
        self.backend = backend
        self.config = config or CacheConfig()
        self.keys = key_generator or CacheKeyGenerator(self.config.prefix)
        self.role_model = role_model
        self.permission_model = permission_model
        self._enabled = self.config.enabled
        self._ttl = self.config.ttl
        # keys written by this instance, for backends that cannot flush by tag or pattern
        self._written: Set[str] = set()

    # ------------------------------------------------------------------
    # Controls
    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    @property
    def ttl(self) -> int:
        return self._ttl

    @ttl.setter
    def ttl(self, value: int) -> None:
        self._ttl = value

    # ------------------------------------------------------------------
    # Raw access
    async def _read(self, key: str) -> Any:
        try:
            raw = await self.backend.get(key)
        except CacheBackendError as exc:
            logger.warning(f"Cache read failed for {key}, treating as miss: {exc}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    async def _write(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        effective_ttl = self._ttl
        if ttl is not None:
            effective_ttl = min(effective_ttl, int(ttl)) if effective_ttl else int(ttl)
            if effective_ttl < 1:
                return
        try:
            await self.backend.set(
                key, json.dumps(value, default=str), effective_ttl, self.config.tags
            )
            self._written.add(key)
        except CacheBackendError as exc:
            logger.warning(f"Cache write failed for {key}: {exc}")

    async def _forget(self, *keys: str) -> None:
        if not self._enabled:
            return
        try:
            await self.backend.delete(*keys)
            self._written.difference_update(keys)
        except CacheBackendError as exc:
            logger.warning(f"Cache delete failed for {keys}: {exc}")

    async def remember(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached JSON value for ``key`` or load and store it.

        ``None`` results are never cached.
        """
        if not self._enabled:
            return await loader()
        cached = await self._read(key)
        if cached is not None:
            return cached
        logger.debug(f"Cache miss for {key}")
        value = await loader()
        if value is not None:
            await self._write(key, value, ttl)
        return value

    # ------------------------------------------------------------------
    # Model helpers
    @staticmethod
    def _dump_many(models: List[BaseModel]) -> list:
        return [m.model_dump(mode="json") for m in models]

    async def _remember_many(
        self, key: str, model: Type[ModelT], loader: Callable[[], Awaitable[List[ModelT]]]
    ) -> List[ModelT]:
        async def _load() -> list:
            return self._dump_many(await loader())

        data = await self.remember(key, _load)
        return [model.model_validate(item) for item in data]

    async def _remember_one(
        self, key: str, model: Type[ModelT], loader: Callable[[], Awaitable[Optional[ModelT]]]
    ) -> Optional[ModelT]:
        async def _load() -> Optional[dict]:
            found = await loader()
            return found.model_dump(mode="json") if found is not None else None

        data = await self.remember(key, _load)
        return model.model_validate(data) if data is not None else None

    # ------------------------------------------------------------------
    # Per-actor sets
    async def get_actor_permissions(self, actor_id: ActorId) -> Optional[List[Permission]]:
        if not self._enabled:
            return None
        data = await self._read(self.keys.for_user_permissions(actor_id))
        if data is None:
            return None
        return [self.permission_model.model_validate(item) for item in data]

    async def put_actor_permissions(
        self, actor_id: ActorId, permissions: List[Permission], ttl: Optional[float] = None
    ) -> None:
        if self._enabled:
            await self._write(
                self.keys.for_user_permissions(actor_id), self._dump_many(permissions), ttl
            )

    async def get_actor_roles(self, actor_id: ActorId) -> Optional[List[Role]]:
        if not self._enabled:
            return None
        data = await self._read(self.keys.for_user_roles(actor_id))
        if data is None:
            return None
        return [self.role_model.model_validate(item) for item in data]

    async def put_actor_roles(
        self, actor_id: ActorId, roles: List[Role], ttl: Optional[float] = None
    ) -> None:
        if self._enabled:
            await self._write(self.keys.for_user_roles(actor_id), self._dump_many(roles), ttl)

    # ------------------------------------------------------------------
    # Entity lookups
    async def get_role_permissions(
        self, role_id: int, loader: Callable[[], Awaitable[List[Permission]]]
    ) -> List[Permission]:
        return await self._remember_many(
            self.keys.for_role_permissions(role_id), self.permission_model, loader
        )

    async def get_role(
        self, name: str, loader: Callable[[], Awaitable[Optional[Role]]]
    ) -> Optional[Role]:
        return await self._remember_one(self.keys.for_role_by_name(name), self.role_model, loader)

    async def get_permission(
        self, name: str, loader: Callable[[], Awaitable[Optional[Permission]]]
    ) -> Optional[Permission]:
        return await self._remember_one(
            self.keys.for_permission_by_name(name), self.permission_model, loader
        )

    async def get_all_roles(self, loader: Callable[[], Awaitable[List[Role]]]) -> List[Role]:
        return await self._remember_many(self.keys.for_all_roles(), self.role_model, loader)

    async def get_all_permissions(
        self, loader: Callable[[], Awaitable[List[Permission]]]
    ) -> List[Permission]:
        return await self._remember_many(
            self.keys.for_all_permissions(), self.permission_model, loader
        )

    async def get_permissions_by_resource(
        self, resource: str, loader: Callable[[], Awaitable[List[Permission]]]
    ) -> List[Permission]:
        return await self._remember_many(
            self.keys.for_permissions_by_resource(resource), self.permission_model, loader
        )

    # ------------------------------------------------------------------
    # Invalidation
    async def forget_actor(self, actor_id: ActorId) -> None:
        await self._forget(
            self.keys.for_user_permissions(actor_id), self.keys.for_user_roles(actor_id)
        )

    async def forget_role(self, role_id: int) -> None:
        await self._forget(self.keys.for_role_permissions(role_id))

    async def forget_role_by_name(self, name: str) -> None:
        await self._forget(self.keys.for_role_by_name(name), self.keys.for_all_roles())

    async def forget_permission_by_name(self, name: str, resource: Optional[str] = None) -> None:
        keys = [self.keys.for_permission_by_name(name), self.keys.for_all_permissions()]
        if resource:
            keys.append(self.keys.for_permissions_by_resource(resource))
        await self._forget(*keys)

    async def flush(self) -> None:
        """Drop every rolegate entry.

        Uses tags when the backend supports them, then a prefix pattern, then
        a full backend clear. Backends with none of those get every key this
        instance has written deleted one by one.
        """
        if not self._enabled:
            return
        try:
            if self.backend.supports_tags and self.config.tags:
                await self.backend.invalidate_tags(self.config.tags)
                self._written.clear()
                return
            if self.backend.supports_patterns:
                await self.backend.delete_pattern(self.keys.all_pattern())
                self._written.clear()
                return
        except CacheBackendError as exc:
            logger.warning(f"Cache flush failed, clearing the backend instead: {exc}")
        await self._clear()

    async def _clear(self) -> None:
        if self.backend.supports_clear:
            try:
                await self.backend.clear()
                self._written.clear()
                return
            except CacheBackendError as exc:
                logger.warning(f"Cache clear failed, deleting known keys: {exc}")
        known = {self.keys.for_all_roles(), self.keys.for_all_permissions(), *self._written}
        await self._forget(*sorted(known))
