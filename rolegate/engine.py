"""Permission-resolution engine.

Combines role assignments, the role hierarchy, direct grants, wildcard
patterns and the super-admin bypass into a single decision, memoizing the
per-actor result in a :class:`~rolegate.cache.PermissionCache`.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from .audit import AuditLog
from .cache import InMemoryCacheBackend, PermissionCache, get_cache
from .config import RbacConfig, load_config
from .contracts import Authorizable
from .exceptions import (
    PermissionAlreadyExistsError,
    PermissionNotFoundError,
    ProtectedEntityError,
    RoleAlreadyExistsError,
    RoleNotFoundError,
)
from .hierarchy import HierarchyResolver
from .models import (
    ActorId,
    Assignment,
    Permission,
    PermissionAssignment,
    Role,
    RoleAssignment,
    utcnow,
)
from .store import BaseEntityStore, get_store
from .wildcard import WildcardMatcher

logger = logging.getLogger(__name__)

ActorT = TypeVar("ActorT", bound=Authorizable)
RoleArg = Union[str, int, Role]
PermissionArg = Union[str, int, Permission]

DEFAULT_CRUD_ACTIONS = ("create", "read", "update", "delete")


def _flatten(items: Iterable[Any]) -> List[Any]:
    """Flatten nested lists/tuples/sets of role or permission arguments."""
    flat: List[Any] = []
    for item in items:
        if isinstance(item, (list, tuple, set, frozenset)):
            flat.extend(_flatten(item))
        else:
            flat.append(item)
    return flat


class RbacEngine(Generic[ActorT]):
    """Answers "does actor A currently hold capability C?".

    The engine holds no per-actor state of its own; every decision is
    re-derived from the store and the cache. Mutations write to the store
    first and invalidate the affected cache entries afterwards.
    """

    def __init__(
        self,
        store: BaseEntityStore,
        cache: Optional[PermissionCache] = None,
        config: Optional[RbacConfig] = None,
        role_model: Type[Role] = Role,
        permission_model: Type[Permission] = Permission,
        audit: Optional[AuditLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.role_model = role_model
        self.permission_model = permission_model
        self.clock = clock or utcnow
        self.configure(config or RbacConfig())
        self.cache = cache or PermissionCache(
            InMemoryCacheBackend(),
            self.config.cache,
            role_model=role_model,
            permission_model=permission_model,
        )
        # cached entries decode into the engine's model classes
        self.cache.role_model = role_model
        self.cache.permission_model = permission_model
        self.audit = audit or AuditLog(self.config.audit)
        self.store.on_actor_removed(self._on_actor_removed)

    def configure(self, config: RbacConfig) -> None:
        """Swap the engine's policy; takes effect on the next call.

        Cached inherited sets are not touched; use :meth:`reconfigure` when
        the hierarchy settings change.
        """
        self.config = config
        self.hierarchy = HierarchyResolver(self.store, config.hierarchy)
        self.matcher = WildcardMatcher(config.wildcards, config.super_admin.permission)

    async def reconfigure(self, config: RbacConfig) -> None:
        """Swap the policy and drop cached sets built under the old hierarchy."""
        hierarchy_changed = config.hierarchy != self.config.hierarchy
        self.configure(config)
        if hierarchy_changed:
            logger.info("Hierarchy settings changed, flushing permission cache")
            await self.cache.flush()

    # ------------------------------------------------------------------
    # Helpers
    @staticmethod
    def identify(actor: Union[ActorT, ActorId]) -> ActorId:
        """Return the actor's identifier; raw ids pass through unchanged."""
        if isinstance(actor, Authorizable):
            return actor.get_auth_identifier()
        return actor

    def _ttl_until_expiry(self, assignments: Iterable[Assignment]) -> Optional[float]:
        expiries = [a.expires_at for a in assignments if a.expires_at is not None]
        if not expiries:
            return None
        return (min(expiries) - self.clock()).total_seconds()

    def _as_role(self, role: Optional[Role]) -> Optional[Role]:
        if role is None or isinstance(role, self.role_model):
            return role
        return self.role_model.model_validate(role.model_dump())

    def _as_permission(self, permission: Optional[Permission]) -> Optional[Permission]:
        if permission is None or isinstance(permission, self.permission_model):
            return permission
        return self.permission_model.model_validate(permission.model_dump())

    def _permission_name(self, permission: Union[str, Permission]) -> str:
        return permission.name if isinstance(permission, Permission) else permission

    def _matches_any(self, held: Iterable[str], requested: str) -> bool:
        held = list(held)
        if requested in held:
            return True
        if not self.matcher.enabled:
            return False
        return any(self.matcher.matches(name, requested) for name in held)

    async def _resolve_role(self, role: RoleArg, required: bool = True) -> Optional[Role]:
        if isinstance(role, Role):
            return role
        if isinstance(role, int):
            found = self._as_role(await self.store.get_role(role))
            if found is None and required:
                raise RoleNotFoundError(str(role), f"Role with ID '{role}' not found.")
            return found
        found = await self.find_role(role)
        if found is None:
            raise RoleNotFoundError(role)
        return found

    async def _resolve_roles(self, roles: Iterable[RoleArg]) -> List[Role]:
        resolved: Dict[int, Role] = {}
        for arg in _flatten(roles):
            role = await self._resolve_role(arg)
            resolved.setdefault(role.id, role)
        return list(resolved.values())

    async def _resolve_permission(
        self, permission: PermissionArg, required: bool = True
    ) -> Optional[Permission]:
        if isinstance(permission, Permission):
            return permission
        if isinstance(permission, int):
            found = self._as_permission(await self.store.get_permission(permission))
            if found is None and required:
                raise PermissionNotFoundError(
                    str(permission), f"Permission with ID '{permission}' not found."
                )
            return found
        found = await self.find_permission(permission)
        if found is None:
            raise PermissionNotFoundError(permission)
        return found

    async def _resolve_permissions(self, permissions: Iterable[PermissionArg]) -> List[Permission]:
        resolved: Dict[int, Permission] = {}
        for arg in _flatten(permissions):
            permission = await self._resolve_permission(arg)
            resolved.setdefault(permission.id, permission)
        return list(resolved.values())

    async def _role_permissions(self, role: Role) -> List[Permission]:
        return await self.cache.get_role_permissions(
            role.id, lambda: self.hierarchy.permissions_for(role)
        )

    async def _on_actor_removed(self, actor_id: ActorId) -> None:
        await self.cache.forget_actor(actor_id)

    # ------------------------------------------------------------------
    # Effective sets
    async def get_roles(self, actor: ActorT) -> List[Role]:
        """Roles whose assignment is currently effective for ``actor``."""
        actor_id = self.identify(actor)
        cached = await self.cache.get_actor_roles(actor_id)
        if cached is not None:
            return cached
        rows = await self.store.list_effective_role_assignments(actor_id, self.clock())
        roles = [self._as_role(role) for role, _ in rows]
        await self.cache.put_actor_roles(
            actor_id, roles, ttl=self._ttl_until_expiry(a for _, a in rows)
        )
        return roles

    async def get_role_names(self, actor: ActorT) -> List[str]:
        return [role.name for role in await self.get_roles(actor)]

    async def get_all_permissions(self, actor: ActorT) -> List[Permission]:
        """Union of expanded role permissions and effective direct grants."""
        actor_id = self.identify(actor)
        cached = await self.cache.get_actor_permissions(actor_id)
        if cached is not None:
            return cached

        now = self.clock()
        role_rows = await self.store.list_effective_role_assignments(actor_id, now)
        direct_rows = await self.store.list_effective_permission_assignments(actor_id, now)

        permissions: Dict[int, Permission] = {}
        for role, _ in role_rows:
            for permission in await self._role_permissions(role):
                permissions.setdefault(permission.id, permission)
        for permission, _ in direct_rows:
            permissions.setdefault(permission.id, permission)

        result = [self._as_permission(p) for p in permissions.values()]
        ttl = self._ttl_until_expiry([a for _, a in role_rows] + [a for _, a in direct_rows])
        await self.cache.put_actor_permissions(actor_id, result, ttl=ttl)
        logger.debug(f"Computed {len(result)} permissions for actor {actor_id}")
        return result

    async def get_permission_names(self, actor: ActorT) -> List[str]:
        return [permission.name for permission in await self.get_all_permissions(actor)]

    async def get_direct_permissions(self, actor: ActorT) -> List[Permission]:
        rows = await self.store.list_effective_permission_assignments(
            self.identify(actor), self.clock()
        )
        return [self._as_permission(permission) for permission, _ in rows]

    async def get_permissions_grouped_by_resource(
        self, actor: ActorT
    ) -> Dict[Optional[str], List[Permission]]:
        grouped: Dict[Optional[str], List[Permission]] = defaultdict(list)
        for permission in await self.get_all_permissions(actor):
            grouped[permission.resource].append(permission)
        return dict(grouped)

    async def get_highest_role(self, actor: ActorT) -> Optional[Role]:
        roles = await self.get_roles(actor)
        return max(roles, key=lambda r: r.level) if roles else None

    # ------------------------------------------------------------------
    # Checks
    async def is_super_admin(self, actor: ActorT) -> bool:
        if not self.config.super_admin.enabled:
            return False
        return await self.has_role(actor, self.config.super_admin.role)

    async def has_permission(
        self, actor: ActorT, permissions: Union[PermissionArg, Iterable[PermissionArg]]
    ) -> bool:
        """True if ``actor`` holds any of ``permissions``."""
        if await self.is_super_admin(actor):
            logger.debug(f"Actor {self.identify(actor)} passed as super admin")
            return True

        requested = [self._permission_name(p) for p in _flatten([permissions])]
        held: Optional[List[str]] = None
        for name in requested:
            if isinstance(name, int):
                found = await self._resolve_permission(name, required=False)
                if found is None:
                    continue
                name = found.name
            # the super-permission literal is only ever granted by the bypass
            if name == self.config.super_admin.permission:
                continue
            if held is None:
                held = await self.get_permission_names(actor)
            if self._matches_any(held, name):
                logger.debug(f"Actor {self.identify(actor)} granted '{name}'")
                return True

        logger.debug(f"Actor {self.identify(actor)} denied {requested}")
        return False

    async def has_all_permissions(
        self, actor: ActorT, permissions: Iterable[PermissionArg]
    ) -> bool:
        for permission in _flatten(permissions):
            if not await self.has_permission(actor, permission):
                return False
        return True

    async def has_any_permission(
        self, actor: ActorT, permissions: Iterable[PermissionArg]
    ) -> bool:
        for permission in _flatten(permissions):
            if await self.has_permission(actor, permission):
                return True
        return False

    async def has_direct_permission(self, actor: ActorT, permission: PermissionArg) -> bool:
        """Check direct grants only, ignoring roles and the super-admin bypass."""
        name = self._permission_name(permission)
        direct = [p.name for p in await self.get_direct_permissions(actor)]
        return self._matches_any(direct, name)

    async def has_permission_via_role(self, actor: ActorT, permission: PermissionArg) -> bool:
        name = self._permission_name(permission)
        for role in await self.get_roles(actor):
            if self._matches_any([p.name for p in await self._role_permissions(role)], name):
                return True
        return False

    async def has_role(self, actor: ActorT, roles: Union[RoleArg, Iterable[RoleArg]]) -> bool:
        """True if ``actor`` effectively holds any of ``roles``.

        Strings compare by name, ``Role`` instances and ints by identity.
        """
        current = await self.get_roles(actor)
        for wanted in _flatten([roles]):
            for role in current:
                if isinstance(wanted, Role):
                    if role.same_as(wanted):
                        return True
                elif isinstance(wanted, int):
                    if role.id == wanted:
                        return True
                elif role.name == wanted:
                    return True
        return False

    async def has_all_roles(self, actor: ActorT, roles: Iterable[RoleArg]) -> bool:
        for role in _flatten(roles):
            if not await self.has_role(actor, role):
                return False
        return True

    async def has_any_role(self, actor: ActorT, roles: Iterable[RoleArg]) -> bool:
        return await self.has_role(actor, list(roles))

    async def has_exact_roles(self, actor: ActorT, roles: Iterable[Union[str, Role]]) -> bool:
        """True if the effective role-name set equals ``roles`` exactly."""
        expected = {r.name if isinstance(r, Role) else r for r in _flatten(roles)}
        return set(await self.get_role_names(actor)) == expected

    # ------------------------------------------------------------------
    # Role assignments
    @staticmethod
    def _assigner_id(assigned_by: Optional[Union[Authorizable, ActorId]]) -> Optional[ActorId]:
        if assigned_by is None:
            return None
        if isinstance(assigned_by, Authorizable):
            return assigned_by.get_auth_identifier()
        return assigned_by

    async def assign_role(
        self,
        actor: ActorT,
        *roles: Union[RoleArg, Sequence[RoleArg]],
        expires_at: Optional[datetime] = None,
        assigned_by: Optional[Union[Authorizable, ActorId]] = None,
    ) -> None:
        """Grant ``roles`` to ``actor`` without touching its other roles."""
        actor_id = self.identify(actor)
        resolved = await self._resolve_roles(roles)
        for role in resolved:
            await self.store.upsert_role_assignment(
                RoleAssignment(
                    entity_id=role.id,
                    actor_id=actor_id,
                    assigned_by=self._assigner_id(assigned_by),
                    expires_at=expires_at,
                    is_active=True,
                )
            )
        await self.cache.forget_actor(actor_id)
        for role in resolved:
            logger.info(f"Assigned role '{role.name}' to actor {actor_id}")
            await self.audit.record(
                "role_assigned",
                {"actor": actor_id, "role": role.name, "expires_at": expires_at},
            )

    async def assign_role_with_expiration(
        self,
        actor: ActorT,
        role: RoleArg,
        expires_at: Optional[datetime] = None,
        assigned_by: Optional[Union[Authorizable, ActorId]] = None,
    ) -> None:
        await self.assign_role(actor, role, expires_at=expires_at, assigned_by=assigned_by)

    async def remove_role(self, actor: ActorT, *roles: Union[RoleArg, Sequence[RoleArg]]) -> None:
        """Delete the assignment rows for ``roles``; unassigned roles are ignored."""
        actor_id = self.identify(actor)
        resolved = await self._resolve_roles(roles)
        await self.store.delete_role_assignments(actor_id, [role.id for role in resolved])
        await self.cache.forget_actor(actor_id)
        for role in resolved:
            logger.info(f"Removed role '{role.name}' from actor {actor_id}")
            await self.audit.record("role_revoked", {"actor": actor_id, "role": role.name})

    async def sync_roles(
        self,
        actor: ActorT,
        roles: Iterable[RoleArg],
        assigned_by: Optional[Union[Authorizable, ActorId]] = None,
    ) -> None:
        """Make ``roles`` the actor's complete role set."""
        actor_id = self.identify(actor)
        resolved = await self._resolve_roles(roles)
        wanted = {role.id for role in resolved}
        current = await self.store.list_role_assignments(actor_id)
        stale = [role.id for role, _ in current if role.id not in wanted]
        if stale:
            await self.store.delete_role_assignments(actor_id, stale)
        # kept rows retain their expiry
        expiries = {role.id: assignment.expires_at for role, assignment in current}
        for role in resolved:
            await self.store.upsert_role_assignment(
                RoleAssignment(
                    entity_id=role.id,
                    actor_id=actor_id,
                    assigned_by=self._assigner_id(assigned_by),
                    expires_at=expiries.get(role.id),
                )
            )
        await self.cache.forget_actor(actor_id)
        logger.info(f"Synced roles {[r.name for r in resolved]} for actor {actor_id}")

    # ------------------------------------------------------------------
    # Direct permission grants
    async def give_permission_to(
        self,
        actor: ActorT,
        *permissions: Union[PermissionArg, Sequence[PermissionArg]],
        expires_at: Optional[datetime] = None,
        assigned_by: Optional[Union[Authorizable, ActorId]] = None,
    ) -> None:
        actor_id = self.identify(actor)
        resolved = await self._resolve_permissions(permissions)
        for permission in resolved:
            await self.store.upsert_permission_assignment(
                PermissionAssignment(
                    entity_id=permission.id,
                    actor_id=actor_id,
                    assigned_by=self._assigner_id(assigned_by),
                    expires_at=expires_at,
                    is_active=True,
                )
            )
        await self.cache.forget_actor(actor_id)
        for permission in resolved:
            logger.info(f"Gave permission '{permission.name}' to actor {actor_id}")
            await self.audit.record(
                "permission_assigned",
                {"actor": actor_id, "permission": permission.name, "expires_at": expires_at},
            )

    async def give_permission_with_expiration(
        self,
        actor: ActorT,
        permission: PermissionArg,
        expires_at: Optional[datetime] = None,
        assigned_by: Optional[Union[Authorizable, ActorId]] = None,
    ) -> None:
        await self.give_permission_to(
            actor, permission, expires_at=expires_at, assigned_by=assigned_by
        )

    async def revoke_permission_to(
        self, actor: ActorT, *permissions: Union[PermissionArg, Sequence[PermissionArg]]
    ) -> None:
        actor_id = self.identify(actor)
        resolved = await self._resolve_permissions(permissions)
        await self.store.delete_permission_assignments(actor_id, [p.id for p in resolved])
        await self.cache.forget_actor(actor_id)
        for permission in resolved:
            logger.info(f"Revoked permission '{permission.name}' from actor {actor_id}")
            await self.audit.record(
                "permission_revoked", {"actor": actor_id, "permission": permission.name}
            )

    async def sync_permissions(
        self,
        actor: ActorT,
        permissions: Iterable[PermissionArg],
        assigned_by: Optional[Union[Authorizable, ActorId]] = None,
    ) -> None:
        actor_id = self.identify(actor)
        resolved = await self._resolve_permissions(permissions)
        wanted = {p.id for p in resolved}
        current = await self.store.list_permission_assignments(actor_id)
        stale = [p.id for p, _ in current if p.id not in wanted]
        if stale:
            await self.store.delete_permission_assignments(actor_id, stale)
        expiries = {p.id: assignment.expires_at for p, assignment in current}
        for permission in resolved:
            await self.store.upsert_permission_assignment(
                PermissionAssignment(
                    entity_id=permission.id,
                    actor_id=actor_id,
                    assigned_by=self._assigner_id(assigned_by),
                    expires_at=expiries.get(permission.id),
                )
            )
        await self.cache.forget_actor(actor_id)
        logger.info(f"Synced direct permissions {[p.name for p in resolved]} for actor {actor_id}")

    # ------------------------------------------------------------------
    # Role <-> permission links and hierarchy
    async def give_permission_to_role(
        self, role: RoleArg, *permissions: Union[PermissionArg, Sequence[PermissionArg]]
    ) -> None:
        target = await self._resolve_role(role)
        resolved = await self._resolve_permissions(permissions)
        await self.store.attach_permissions(target.id, [p.id for p in resolved])
        await self.cache.forget_role(target.id)
        await self.cache.flush()
        await self.audit.record(
            "role_updated", {"role": target.name, "attached": [p.name for p in resolved]}
        )

    async def revoke_permission_from_role(
        self, role: RoleArg, *permissions: Union[PermissionArg, Sequence[PermissionArg]]
    ) -> None:
        target = await self._resolve_role(role)
        resolved = await self._resolve_permissions(permissions)
        await self.store.detach_permissions(target.id, [p.id for p in resolved])
        await self.cache.forget_role(target.id)
        await self.cache.flush()
        await self.audit.record(
            "role_updated", {"role": target.name, "detached": [p.name for p in resolved]}
        )

    async def sync_role_permissions(self, role: RoleArg, permissions: Iterable[PermissionArg]) -> None:
        target = await self._resolve_role(role)
        resolved = await self._resolve_permissions(permissions)
        await self.store.sync_role_permissions(target.id, [p.id for p in resolved])
        await self.cache.forget_role(target.id)
        await self.cache.flush()
        await self.audit.record(
            "role_updated", {"role": target.name, "synced": [p.name for p in resolved]}
        )

    async def role_has_permission(self, role: RoleArg, permission: PermissionArg) -> bool:
        """Check a role's own and inherited permissions, wildcards included."""
        target = await self._resolve_role(role, required=False)
        if target is None:
            return False
        names = [p.name for p in await self._role_permissions(target)]
        return self._matches_any(names, self._permission_name(permission))

    async def get_role_permissions(self, role: RoleArg) -> List[Permission]:
        target = await self._resolve_role(role, required=False)
        if target is None:
            return []
        return await self._role_permissions(target)

    async def set_parent(self, role: RoleArg, parent: Optional[RoleArg]) -> Role:
        """Attach ``role`` under ``parent`` (or detach it with ``None``)."""
        target = await self._resolve_role(role)
        target = await self.store.get_role(target.id) or target
        parent_role = await self._resolve_role(parent) if parent is not None else None
        await self.hierarchy.validate_parent(target, parent_role)
        target.parent_id = parent_role.id if parent_role else None
        updated = await self.store.update_role(target)
        await self.cache.forget_role_by_name(target.name)
        await self.cache.flush()
        await self.audit.record(
            "role_updated",
            {"role": target.name, "parent": parent_role.name if parent_role else None},
        )
        return updated

    # ------------------------------------------------------------------
    # Entity management
    async def find_role(self, name: str) -> Optional[Role]:
        return await self.cache.get_role(name, lambda: self.store.find_role_by_name(name))

    async def find_role_or_fail(self, name: str) -> Role:
        role = await self.find_role(name)
        if role is None:
            raise RoleNotFoundError(name)
        return role

    async def find_permission(self, name: str) -> Optional[Permission]:
        return await self.cache.get_permission(
            name, lambda: self.store.find_permission_by_name(name)
        )

    async def find_permission_or_fail(self, name: str) -> Permission:
        permission = await self.find_permission(name)
        if permission is None:
            raise PermissionNotFoundError(name)
        return permission

    async def get_all_roles(self) -> List[Role]:
        """All active roles."""
        return await self.cache.get_all_roles(self.store.list_active_roles)

    async def get_all_permissions_list(self) -> List[Permission]:
        """All active permissions."""
        return await self.cache.get_all_permissions(self.store.list_active_permissions)

    async def create_role(
        self,
        name: str,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        level: int = 0,
        parent: Optional[RoleArg] = None,
        is_system: bool = False,
        is_active: bool = True,
    ) -> Role:
        if await self.store.find_role_by_name(name) is not None:
            raise RoleAlreadyExistsError(name)
        role = self.role_model(
            name=name,
            display_name=display_name,
            description=description,
            level=level,
            is_system=is_system,
            is_active=is_active,
        )
        if parent is not None:
            parent_role = await self._resolve_role(parent)
            await self.hierarchy.validate_parent(role, parent_role)
            role.parent_id = parent_role.id
        created = await self.store.create_role(role)
        await self.cache.forget_role_by_name(name)
        logger.info(f"Created role '{name}'")
        await self.audit.record("role_created", {"role": name})
        return created

    async def create_permission(
        self,
        name: str,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        resource: Optional[str] = None,
        action: Optional[str] = None,
        is_system: bool = False,
        is_active: bool = True,
    ) -> Permission:
        if await self.store.find_permission_by_name(name) is not None:
            raise PermissionAlreadyExistsError(name)
        permission = self.permission_model.from_name(
            name,
            self.config.wildcards.separator,
            display_name=display_name,
            description=description,
            resource=resource,
            action=action,
            is_system=is_system,
            is_active=is_active,
        )
        created = await self.store.create_permission(permission)
        await self.cache.forget_permission_by_name(name, created.resource)
        logger.info(f"Created permission '{name}'")
        await self.audit.record("permission_created", {"permission": name})
        return created

    async def find_or_create_role(self, name: str, **attributes: Any) -> Role:
        role = await self.find_role(name)
        if role is not None:
            return role
        return await self.create_role(name, **attributes)

    async def find_or_create_permission(self, name: str, **attributes: Any) -> Permission:
        permission = await self.find_permission(name)
        if permission is not None:
            return permission
        return await self.create_permission(name, **attributes)

    async def delete_role(self, role: RoleArg) -> bool:
        """Delete a non-system role with its links and assignments."""
        target = await self._resolve_role(role)
        if target.is_system:
            raise ProtectedEntityError("role", target.name)
        await self.store.delete_role(target.id)
        await self.cache.forget_role_by_name(target.name)
        await self.cache.flush()
        logger.info(f"Deleted role '{target.name}'")
        await self.audit.record("role_deleted", {"role": target.name})
        return True

    async def delete_permission(self, permission: PermissionArg) -> bool:
        target = await self._resolve_permission(permission)
        if target.is_system:
            raise ProtectedEntityError("permission", target.name)
        await self.store.delete_permission(target.id)
        await self.cache.forget_permission_by_name(target.name, target.resource)
        await self.cache.flush()
        logger.info(f"Deleted permission '{target.name}'")
        await self.audit.record("permission_deleted", {"permission": target.name})
        return True

    async def _set_role_active(self, role: RoleArg, active: bool) -> Role:
        target = await self._resolve_role(role)
        target = await self.store.get_role(target.id) or target
        target.is_active = active
        updated = await self.store.update_role(target)
        await self.cache.forget_role_by_name(target.name)
        await self.cache.flush()
        await self.audit.record("role_updated", {"role": target.name, "is_active": active})
        return updated

    async def deactivate_role(self, role: RoleArg) -> Role:
        return await self._set_role_active(role, False)

    async def activate_role(self, role: RoleArg) -> Role:
        return await self._set_role_active(role, True)

    async def _set_permission_active(self, permission: PermissionArg, active: bool) -> Permission:
        target = await self._resolve_permission(permission)
        target = await self.store.get_permission(target.id) or target
        target.is_active = active
        updated = await self.store.update_permission(target)
        await self.cache.forget_permission_by_name(target.name, target.resource)
        await self.cache.flush()
        await self.audit.record(
            "permission_updated", {"permission": target.name, "is_active": active}
        )
        return updated

    async def deactivate_permission(self, permission: PermissionArg) -> Permission:
        return await self._set_permission_active(permission, False)

    async def activate_permission(self, permission: PermissionArg) -> Permission:
        return await self._set_permission_active(permission, True)

    async def create_crud_permissions(
        self, resource: str, actions: Sequence[str] = DEFAULT_CRUD_ACTIONS
    ) -> List[Permission]:
        """Find or create ``<resource><separator><action>`` for each action."""
        permissions = []
        for action in actions:
            name = self.matcher.join(resource, action)
            permissions.append(
                await self.find_or_create_permission(name, resource=resource, action=action)
            )
        return permissions

    async def get_permissions_by_resource(self, resource: str) -> List[Permission]:
        async def _load() -> List[Permission]:
            return [p for p in await self.store.list_active_permissions() if p.resource == resource]

        return await self.cache.get_permissions_by_resource(resource, _load)

    async def get_resources(self) -> List[str]:
        return sorted({p.resource for p in await self.get_all_permissions_list() if p.resource})

    async def get_actions_for_resource(self, resource: str) -> List[str]:
        return sorted(
            {p.action for p in await self.get_permissions_by_resource(resource) if p.action}
        )

    # ------------------------------------------------------------------
    # Cache control
    async def clear_cache(self, actor: Optional[Union[ActorT, ActorId]] = None) -> None:
        if actor is not None:
            await self.cache.forget_actor(self.identify(actor))
        else:
            await self.cache.flush()

    async def build_cache(self) -> Tuple[int, int]:
        """Warm role and permission lookups; returns the counts loaded."""
        roles = await self.get_all_roles()
        permissions = await self.get_all_permissions_list()
        for role in roles:
            await self.find_role(role.name)
        for permission in permissions:
            await self.find_permission(permission.name)
        logger.info(f"Warmed cache with {len(roles)} roles and {len(permissions)} permissions")
        return len(roles), len(permissions)


def build_engine(
    config: Optional[RbacConfig] = None,
    store: Optional[BaseEntityStore] = None,
    cache: Optional[PermissionCache] = None,
) -> RbacEngine:
    """Wire an engine from configuration."""

    config = config or load_config()
    store = store or get_store(config=config)
    cache = cache or get_cache(config=config)
    return RbacEngine(store, cache, config)
