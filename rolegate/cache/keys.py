"""Deterministic, namespaced cache keys."""

from __future__ import annotations

import hashlib

from ..models import ActorId


def _digest(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


class CacheKeyGenerator:
    """Builds ``<prefix>:<category>_<identity>`` keys."""

    def __init__(self, prefix: str = "rolegate") -> None:
        self.prefix = prefix

    def _key(self, suffix: str) -> str:
        return f"{self.prefix}:{suffix}"

    def for_user_permissions(self, actor_id: ActorId) -> str:
        return self._key(f"user_permissions_{actor_id}")

    def for_user_roles(self, actor_id: ActorId) -> str:
        return self._key(f"user_roles_{actor_id}")

    def for_role_permissions(self, role_id: int) -> str:
        return self._key(f"role_permissions_{role_id}")

    def for_all_roles(self) -> str:
        return self._key("all_roles")

    def for_all_permissions(self) -> str:
        return self._key("all_permissions")

    def for_role_by_name(self, name: str) -> str:
        return self._key(f"role_name_{_digest(name)}")

    def for_permission_by_name(self, name: str) -> str:
        return self._key(f"permission_name_{_digest(name)}")

    def for_permissions_by_resource(self, resource: str) -> str:
        return self._key(f"permissions_resource_{_digest(resource)}")

    def all_pattern(self) -> str:
        return self._key("*")
