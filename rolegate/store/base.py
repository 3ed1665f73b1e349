"""Entity store contract consumed by the resolution engine."""

from __future__ import annotations

import abc
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from ..models import (
    ActorId,
    Permission,
    PermissionAssignment,
    Role,
    RoleAssignment,
    utcnow,
)

logger = logging.getLogger(__name__)

ActorRemovedCallback = Callable[[ActorId], Awaitable[None]]


class BaseEntityStore(metaclass=abc.ABCMeta):
    """Abstract persistence boundary for roles, permissions and assignments.

    Lookups by identity never raise: an unknown id yields ``None`` or an
    empty list, so a role deleted between two calls of one resolution reads
    as "role has no permissions".
    """

    def __init__(self) -> None:
        self._actor_removed_callbacks: List[ActorRemovedCallback] = []

    async def connect(self) -> None:
        """Open connections (no-op by default)."""
        pass

    async def close(self) -> None:
        """Release connections (no-op by default)."""
        pass

    # ------------------------------------------------------------------
    # Roles
    @abc.abstractmethod
    async def create_role(self, role: Role) -> Role:
        """Persist a new role and return it with its identity set."""
        raise NotImplementedError

    @abc.abstractmethod
    async def update_role(self, role: Role) -> Role:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_role(self, role_id: int) -> None:
        """Delete a role together with its links and assignment rows."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_role(self, role_id: int) -> Optional[Role]:
        raise NotImplementedError

    @abc.abstractmethod
    async def find_role_by_name(self, name: str) -> Optional[Role]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_roles(self) -> List[Role]:
        raise NotImplementedError

    @abc.abstractmethod
    async def children_of(self, role_id: int) -> List[Role]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Permissions
    @abc.abstractmethod
    async def create_permission(self, permission: Permission) -> Permission:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_permission(self, permission: Permission) -> Permission:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_permission(self, permission_id: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_permission(self, permission_id: int) -> Optional[Permission]:
        raise NotImplementedError

    @abc.abstractmethod
    async def find_permission_by_name(self, name: str) -> Optional[Permission]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_permissions(self) -> List[Permission]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Role <-> permission links
    @abc.abstractmethod
    async def list_permissions_of_role(self, role_id: int) -> List[Permission]:
        """Direct (non-inherited) permissions of a role."""
        raise NotImplementedError

    @abc.abstractmethod
    async def attach_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def detach_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Assignments
    @abc.abstractmethod
    async def upsert_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        """Insert or update the single row for (role, actor)."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_role_assignments(self, actor_id: ActorId, role_ids: Iterable[int]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_role_assignments(
        self, actor_id: ActorId
    ) -> List[Tuple[Role, RoleAssignment]]:
        """All role rows for the actor, regardless of validity."""
        raise NotImplementedError

    @abc.abstractmethod
    async def upsert_permission_assignment(
        self, assignment: PermissionAssignment
    ) -> PermissionAssignment:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_permission_assignments(
        self, actor_id: ActorId, permission_ids: Iterable[int]
    ) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_permission_assignments(
        self, actor_id: ActorId
    ) -> List[Tuple[Permission, PermissionAssignment]]:
        raise NotImplementedError

    @abc.abstractmethod
    async def _detach_actor(self, actor_id: ActorId) -> None:
        """Delete every assignment row owned by the actor."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Derived queries shared by all backends
    async def list_active_roles(self) -> List[Role]:
        return [role for role in await self.list_roles() if role.is_active]

    async def list_active_permissions(self) -> List[Permission]:
        return [perm for perm in await self.list_permissions() if perm.is_active]

    async def parent_of(self, role: Role) -> Optional[Role]:
        if role.parent_id is None:
            return None
        return await self.get_role(role.parent_id)

    async def list_effective_role_assignments(
        self, actor_id: ActorId, now: Optional[datetime] = None
    ) -> List[Tuple[Role, RoleAssignment]]:
        now = now or utcnow()
        return [
            (role, assignment)
            for role, assignment in await self.list_role_assignments(actor_id)
            if assignment.is_effective(role.is_active, now)
        ]

    async def list_effective_permission_assignments(
        self, actor_id: ActorId, now: Optional[datetime] = None
    ) -> List[Tuple[Permission, PermissionAssignment]]:
        now = now or utcnow()
        return [
            (permission, assignment)
            for permission, assignment in await self.list_permission_assignments(actor_id)
            if assignment.is_effective(permission.is_active, now)
        ]

    async def sync_role_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        wanted = set(permission_ids)
        current = {perm.id for perm in await self.list_permissions_of_role(role_id)}
        if current - wanted:
            await self.detach_permissions(role_id, current - wanted)
        if wanted - current:
            await self.attach_permissions(role_id, wanted - current)

    # ------------------------------------------------------------------
    # Actor lifecycle
    def on_actor_removed(self, callback: ActorRemovedCallback) -> None:
        """Register a callback awaited after an actor's rows are removed."""
        self._actor_removed_callbacks.append(callback)

    async def remove_actor(self, actor_id: ActorId) -> None:
        """Cascade-delete the actor's assignments, then notify callbacks."""
        await self._detach_actor(actor_id)
        logger.info(f"Removed assignments for actor {actor_id}")
        for callback in self._actor_removed_callbacks:
            await callback(actor_id)
