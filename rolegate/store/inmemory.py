"""In-memory implementation of the entity store."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..exceptions import PermissionAlreadyExistsError, RoleAlreadyExistsError
from ..models import (
    ActorId,
    Permission,
    PermissionAssignment,
    Role,
    RoleAssignment,
    utcnow,
)
from .base import BaseEntityStore


class InMemoryEntityStore(BaseEntityStore):
    """Store roles, permissions and assignments in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Returned models are copies, so
    callers cannot mutate stored rows in place.
    """

    def __init__(self) -> None:
        super().__init__()
        self._roles: Dict[int, Role] = {}
        self._permissions: Dict[int, Permission] = {}
        self._role_permissions: Dict[int, Set[int]] = {}
        self._role_assignments: Dict[Tuple[int, ActorId], RoleAssignment] = {}
        self._permission_assignments: Dict[Tuple[int, ActorId], PermissionAssignment] = {}
        self._role_id = 0
        self._permission_id = 0

    # ------------------------------------------------------------------
    async def create_role(self, role: Role) -> Role:
        if any(r.name == role.name for r in self._roles.values()):
            raise RoleAlreadyExistsError(role.name)
        self._role_id += 1
        stored = role.model_copy(update={"id": self._role_id})
        self._roles[stored.id] = stored
        return stored.model_copy()

    async def update_role(self, role: Role) -> Role:
        stored = role.model_copy(update={"updated_at": utcnow()})
        self._roles[role.id] = stored
        return stored.model_copy()

    async def delete_role(self, role_id: int) -> None:
        self._roles.pop(role_id, None)
        self._role_permissions.pop(role_id, None)
        for key in [k for k in self._role_assignments if k[0] == role_id]:
            del self._role_assignments[key]
        # children keep living without a parent
        for child in self._roles.values():
            if child.parent_id == role_id:
                child.parent_id = None

    async def get_role(self, role_id: int) -> Optional[Role]:
        role = self._roles.get(role_id)
        return role.model_copy() if role else None

    async def find_role_by_name(self, name: str) -> Optional[Role]:
        for role in self._roles.values():
            if role.name == name:
                return role.model_copy()
        return None

    async def list_roles(self) -> List[Role]:
        return [role.model_copy() for role in self._roles.values()]

    async def children_of(self, role_id: int) -> List[Role]:
        return [r.model_copy() for r in self._roles.values() if r.parent_id == role_id]

    # ------------------------------------------------------------------
    async def create_permission(self, permission: Permission) -> Permission:
        if any(p.name == permission.name for p in self._permissions.values()):
            raise PermissionAlreadyExistsError(permission.name)
        self._permission_id += 1
        stored = permission.model_copy(update={"id": self._permission_id})
        self._permissions[stored.id] = stored
        return stored.model_copy()

    async def update_permission(self, permission: Permission) -> Permission:
        stored = permission.model_copy(update={"updated_at": utcnow()})
        self._permissions[permission.id] = stored
        return stored.model_copy()

    async def delete_permission(self, permission_id: int) -> None:
        self._permissions.pop(permission_id, None)
        for linked in self._role_permissions.values():
            linked.discard(permission_id)
        for key in [k for k in self._permission_assignments if k[0] == permission_id]:
            del self._permission_assignments[key]

    async def get_permission(self, permission_id: int) -> Optional[Permission]:
        permission = self._permissions.get(permission_id)
        return permission.model_copy() if permission else None

    async def find_permission_by_name(self, name: str) -> Optional[Permission]:
        for permission in self._permissions.values():
            if permission.name == name:
                return permission.model_copy()
        return None

    async def list_permissions(self) -> List[Permission]:
        return [perm.model_copy() for perm in self._permissions.values()]

    # ------------------------------------------------------------------
    async def list_permissions_of_role(self, role_id: int) -> List[Permission]:
        if role_id not in self._roles:
            return []
        return [
            self._permissions[pid].model_copy()
            for pid in sorted(self._role_permissions.get(role_id, set()))
            if pid in self._permissions
        ]

    async def attach_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        self._role_permissions.setdefault(role_id, set()).update(permission_ids)

    async def detach_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        linked = self._role_permissions.get(role_id)
        if linked:
            linked.difference_update(permission_ids)

    # ------------------------------------------------------------------
    async def upsert_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        key = (assignment.entity_id, assignment.actor_id)
        existing = self._role_assignments.get(key)
        if existing:
            assignment = assignment.model_copy(
                update={"created_at": existing.created_at, "updated_at": utcnow()}
            )
        self._role_assignments[key] = assignment
        return assignment.model_copy()

    async def delete_role_assignments(self, actor_id: ActorId, role_ids: Iterable[int]) -> None:
        for role_id in role_ids:
            self._role_assignments.pop((role_id, actor_id), None)

    async def list_role_assignments(
        self, actor_id: ActorId
    ) -> List[Tuple[Role, RoleAssignment]]:
        rows = []
        for (role_id, owner), assignment in self._role_assignments.items():
            if owner == actor_id and role_id in self._roles:
                rows.append((self._roles[role_id].model_copy(), assignment.model_copy()))
        return rows

    async def upsert_permission_assignment(
        self, assignment: PermissionAssignment
    ) -> PermissionAssignment:
        key = (assignment.entity_id, assignment.actor_id)
        existing = self._permission_assignments.get(key)
        if existing:
            assignment = assignment.model_copy(
                update={"created_at": existing.created_at, "updated_at": utcnow()}
            )
        self._permission_assignments[key] = assignment
        return assignment.model_copy()

    async def delete_permission_assignments(
        self, actor_id: ActorId, permission_ids: Iterable[int]
    ) -> None:
        for permission_id in permission_ids:
            self._permission_assignments.pop((permission_id, actor_id), None)

    async def list_permission_assignments(
        self, actor_id: ActorId
    ) -> List[Tuple[Permission, PermissionAssignment]]:
        rows = []
        for (permission_id, owner), assignment in self._permission_assignments.items():
            if owner == actor_id and permission_id in self._permissions:
                rows.append(
                    (self._permissions[permission_id].model_copy(), assignment.model_copy())
                )
        return rows

    async def _detach_actor(self, actor_id: ActorId) -> None:
        for key in [k for k in self._role_assignments if k[1] == actor_id]:
            del self._role_assignments[key]
        for key in [k for k in self._permission_assignments if k[1] == actor_id]:
            del self._permission_assignments[key]
