"""Parent-chain permission inheritance for roles."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, List, Optional, Set

from .config import HierarchyConfig
from .exceptions import HierarchyError
from .models import Permission, Role
from .store.base import BaseEntityStore

logger = logging.getLogger(__name__)


class HierarchyResolver:
    """Expands a role into every permission reachable through its parents."""

    def __init__(self, store: BaseEntityStore, config: Optional[HierarchyConfig] = None) -> None:
        self.store = store
        self.config = config or HierarchyConfig()

    @property
    def inherits(self) -> bool:
        return self.config.enabled and self.config.inherit_permissions

    async def chain(self, role: Role) -> AsyncIterator[Role]:
        """Yield ``role`` followed by the ancestors it inherits from.

        Stops at the configured depth, at an inactive ancestor, or when a
        role repeats (a malformed cycle).
        """
        visited: Set[int] = set()
        depth = 0
        current: Optional[Role] = role
        while current is not None:
            if current.id in visited:
                logger.warning(f"Role hierarchy cycle detected at role '{current.name}'")
                return
            visited.add(current.id)
            yield current

            if not self.inherits:
                return
            if self.config.max_depth and depth >= self.config.max_depth:
                return
            parent = await self.store.parent_of(current)
            if parent is None or not parent.is_active:
                return
            depth += 1
            current = parent

    async def ancestors(self, role: Role) -> List[Role]:
        return [r async for r in self.chain(role)][1:]

    async def permissions_for(self, role: Role) -> List[Permission]:
        """All active permissions of ``role`` and its inherited parents."""
        permissions: Dict[int, Permission] = {}
        async for current in self.chain(role):
            for permission in await self.store.list_permissions_of_role(current.id):
                if permission.is_active:
                    permissions.setdefault(permission.id, permission)
        return list(permissions.values())

    # ------------------------------------------------------------------
    async def validate_parent(self, role: Role, parent: Optional[Role]) -> None:
        """Reject a parent that would create a cycle or exceed ``max_depth``."""
        if parent is None:
            return
        if parent.id == role.id:
            raise HierarchyError(f"Role '{role.name}' cannot be its own parent.")

        hops_up = 1
        visited: Set[int] = {parent.id}
        current = await self.store.parent_of(parent)
        while current is not None:
            if current.id == role.id:
                raise HierarchyError(
                    f"Setting '{parent.name}' as parent of '{role.name}' would create a cycle."
                )
            if current.id in visited:
                break
            visited.add(current.id)
            hops_up += 1
            current = await self.store.parent_of(current)

        hops_down = await self._subtree_height(role) if role.id is not None else 0
        total = hops_up + hops_down
        if self.config.max_depth and total > self.config.max_depth:
            raise HierarchyError(
                f"Setting '{parent.name}' as parent of '{role.name}' would create a "
                f"hierarchy {total} levels deep (maximum {self.config.max_depth})."
            )

    async def _subtree_height(self, role: Role) -> int:
        height = 0
        visited: Set[int] = {role.id}
        frontier = [role]
        while frontier:
            next_frontier = []
            for node in frontier:
                for child in await self.store.children_of(node.id):
                    if child.id not in visited:
                        visited.add(child.id)
                        next_frontier.append(child)
            if next_frontier:
                height += 1
            frontier = next_frontier
        return height
