"""PostgreSQL implementation of the entity store."""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

import asyncpg

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

_ROLE_FIELDS = [
    "id",
    "name",
    "display_name",
    "description",
    "level",
    "parent_id",
    "is_system",
    "is_active",
    "created_at",
    "updated_at",
]
_PERMISSION_FIELDS = [
    "id",
    "name",
    "display_name",
    "description",
    "resource",
    "action",
    "is_system",
    "is_active",
    "created_at",
    "updated_at",
]
_ASSIGNMENT_FIELDS = ["user_id", "assigned_by", "expires_at", "is_active", "created_at", "updated_at"]


def _select(alias: str, fields: list[str], prefix: str = "") -> str:
    return ", ".join(f"{alias}.{f} AS {prefix}{f}" for f in fields)


def _role(row: asyncpg.Record) -> Role:
    return Role(**{f: row[f] for f in _ROLE_FIELDS})


def _permission(row: asyncpg.Record) -> Permission:
    return Permission(**{f: row[f] for f in _PERMISSION_FIELDS})


def _assignment(model, entity_id: int, row: asyncpg.Record):
    return model(
        entity_id=entity_id,
        actor_id=row["a_user_id"],
        assigned_by=row["a_assigned_by"],
        expires_at=row["a_expires_at"],
        is_active=row["a_is_active"],
        created_at=row["a_created_at"],
        updated_at=row["a_updated_at"],
    )


class PostgresEntityStore(BaseEntityStore):
    """Persist roles, permissions and assignments using PostgreSQL."""

    def __init__(self, dsn: str):
        super().__init__()
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS roles (
                id SERIAL PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                display_name TEXT,
                description TEXT,
                level INTEGER NOT NULL DEFAULT 0,
                parent_id INTEGER REFERENCES roles(id) ON DELETE SET NULL,
                is_system BOOLEAN NOT NULL DEFAULT FALSE,
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ,
                updated_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS permissions (
                id SERIAL PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                display_name TEXT,
                description TEXT,
                resource TEXT,
                action TEXT,
                is_system BOOLEAN NOT NULL DEFAULT FALSE,
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ,
                updated_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS permission_role (
                permission_id INTEGER NOT NULL REFERENCES permissions(id) ON DELETE CASCADE,
                role_id INTEGER NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
                PRIMARY KEY (permission_id, role_id)
            )
            """
        )
        for table, fk, ref in (
            ("role_user", "role_id", "roles"),
            ("permission_user", "permission_id", "permissions"),
        ):
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id SERIAL PRIMARY KEY,
                    {fk} INTEGER NOT NULL REFERENCES {ref}(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    assigned_by TEXT,
                    expires_at TIMESTAMPTZ,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMPTZ,
                    updated_at TIMESTAMPTZ,
                    UNIQUE ({fk}, user_id)
                )
                """
            )

    # ------------------------------------------------------------------
    # Helper methods
    async def _execute(self, query: str, *params: Any) -> None:
        conn = await self._connect()
        try:
            await conn.execute(query, *params)
        finally:
            await conn.close()

    async def _executemany(self, query: str, rows: list[tuple]) -> None:
        if not rows:
            return
        conn = await self._connect()
        try:
            await conn.executemany(query, rows)
        finally:
            await conn.close()

    async def _fetchrow(self, query: str, *params: Any) -> asyncpg.Record | None:
        conn = await self._connect()
        try:
            return await conn.fetchrow(query, *params)
        finally:
            await conn.close()

    async def _fetch(self, query: str, *params: Any) -> list[asyncpg.Record]:
        conn = await self._connect()
        try:
            return await conn.fetch(query, *params)
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    # Roles
    async def create_role(self, role: Role) -> Role:
        try:
            row = await self._fetchrow(
                "INSERT INTO roles (name, display_name, description, level, parent_id, "
                "is_system, is_active, created_at, updated_at) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9) RETURNING id",
                role.name,
                role.display_name,
                role.description,
                role.level,
                role.parent_id,
                role.is_system,
                role.is_active,
                role.created_at,
                role.updated_at,
            )
        except asyncpg.UniqueViolationError as exc:
            raise RoleAlreadyExistsError(role.name) from exc
        return role.model_copy(update={"id": row["id"]})

    async def update_role(self, role: Role) -> Role:
        role = role.model_copy(update={"updated_at": utcnow()})
        await self._execute(
            "UPDATE roles SET name = $1, display_name = $2, description = $3, level = $4, "
            "parent_id = $5, is_system = $6, is_active = $7, updated_at = $8 WHERE id = $9",
            role.name,
            role.display_name,
            role.description,
            role.level,
            role.parent_id,
            role.is_system,
            role.is_active,
            role.updated_at,
            role.id,
        )
        return role

    async def delete_role(self, role_id: int) -> None:
        await self._execute("DELETE FROM roles WHERE id = $1", role_id)

    async def get_role(self, role_id: int) -> Optional[Role]:
        row = await self._fetchrow(
            f"SELECT {_select('r', _ROLE_FIELDS)} FROM roles r WHERE r.id = $1", role_id
        )
        return _role(row) if row else None

    async def find_role_by_name(self, name: str) -> Optional[Role]:
        row = await self._fetchrow(
            f"SELECT {_select('r', _ROLE_FIELDS)} FROM roles r WHERE r.name = $1", name
        )
        return _role(row) if row else None

    async def list_roles(self) -> List[Role]:
        rows = await self._fetch(f"SELECT {_select('r', _ROLE_FIELDS)} FROM roles r ORDER BY r.id")
        return [_role(r) for r in rows]

    async def children_of(self, role_id: int) -> List[Role]:
        rows = await self._fetch(
            f"SELECT {_select('r', _ROLE_FIELDS)} FROM roles r WHERE r.parent_id = $1 ORDER BY r.id",
            role_id,
        )
        return [_role(r) for r in rows]

    # ------------------------------------------------------------------
    # Permissions
    async def create_permission(self, permission: Permission) -> Permission:
        try:
            row = await self._fetchrow(
                "INSERT INTO permissions (name, display_name, description, resource, action, "
                "is_system, is_active, created_at, updated_at) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9) RETURNING id",
                permission.name,
                permission.display_name,
                permission.description,
                permission.resource,
                permission.action,
                permission.is_system,
                permission.is_active,
                permission.created_at,
                permission.updated_at,
            )
        except asyncpg.UniqueViolationError as exc:
            raise PermissionAlreadyExistsError(permission.name) from exc
        return permission.model_copy(update={"id": row["id"]})

    async def update_permission(self, permission: Permission) -> Permission:
        permission = permission.model_copy(update={"updated_at": utcnow()})
        await self._execute(
            "UPDATE permissions SET name = $1, display_name = $2, description = $3, "
            "resource = $4, action = $5, is_system = $6, is_active = $7, updated_at = $8 "
            "WHERE id = $9",
            permission.name,
            permission.display_name,
            permission.description,
            permission.resource,
            permission.action,
            permission.is_system,
            permission.is_active,
            permission.updated_at,
            permission.id,
        )
        return permission

    async def delete_permission(self, permission_id: int) -> None:
        await self._execute("DELETE FROM permissions WHERE id = $1", permission_id)

    async def get_permission(self, permission_id: int) -> Optional[Permission]:
        row = await self._fetchrow(
            f"SELECT {_select('p', _PERMISSION_FIELDS)} FROM permissions p WHERE p.id = $1",
            permission_id,
        )
        return _permission(row) if row else None

    async def find_permission_by_name(self, name: str) -> Optional[Permission]:
        row = await self._fetchrow(
            f"SELECT {_select('p', _PERMISSION_FIELDS)} FROM permissions p WHERE p.name = $1",
            name,
        )
        return _permission(row) if row else None

    async def list_permissions(self) -> List[Permission]:
        rows = await self._fetch(
            f"SELECT {_select('p', _PERMISSION_FIELDS)} FROM permissions p ORDER BY p.id"
        )
        return [_permission(r) for r in rows]

    # ------------------------------------------------------------------
    # Role <-> permission links
    async def list_permissions_of_role(self, role_id: int) -> List[Permission]:
        rows = await self._fetch(
            f"SELECT {_select('p', _PERMISSION_FIELDS)} FROM permissions p "
            "JOIN permission_role pr ON pr.permission_id = p.id "
            "WHERE pr.role_id = $1 ORDER BY p.id",
            role_id,
        )
        return [_permission(r) for r in rows]

    async def attach_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        await self._executemany(
            "INSERT INTO permission_role (permission_id, role_id) VALUES ($1, $2) "
            "ON CONFLICT DO NOTHING",
            [(pid, role_id) for pid in permission_ids],
        )

    async def detach_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        await self._executemany(
            "DELETE FROM permission_role WHERE permission_id = $1 AND role_id = $2",
            [(pid, role_id) for pid in permission_ids],
        )

    # ------------------------------------------------------------------
    # Assignments
    async def _upsert(self, table: str, fk: str, assignment) -> None:
        await self._execute(
            f"INSERT INTO {table} ({fk}, user_id, assigned_by, expires_at, is_active, "
            "created_at, updated_at) VALUES ($1, $2, $3, $4, $5, $6, $7) "
            f"ON CONFLICT ({fk}, user_id) DO UPDATE SET "
            "assigned_by = EXCLUDED.assigned_by, expires_at = EXCLUDED.expires_at, "
            "is_active = EXCLUDED.is_active, updated_at = EXCLUDED.updated_at",
            assignment.entity_id,
            str(assignment.actor_id),
            str(assignment.assigned_by) if assignment.assigned_by is not None else None,
            assignment.expires_at,
            assignment.is_active,
            assignment.created_at,
            utcnow(),
        )

    async def upsert_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        await self._upsert("role_user", "role_id", assignment)
        return assignment

    async def delete_role_assignments(self, actor_id: ActorId, role_ids: Iterable[int]) -> None:
        await self._executemany(
            "DELETE FROM role_user WHERE user_id = $1 AND role_id = $2",
            [(str(actor_id), rid) for rid in role_ids],
        )

    async def list_role_assignments(
        self, actor_id: ActorId
    ) -> List[Tuple[Role, RoleAssignment]]:
        rows = await self._fetch(
            f"SELECT {_select('r', _ROLE_FIELDS)}, {_select('ru', _ASSIGNMENT_FIELDS, 'a_')} "
            "FROM role_user ru JOIN roles r ON r.id = ru.role_id "
            "WHERE ru.user_id = $1 ORDER BY r.id",
            str(actor_id),
        )
        result = []
        for row in rows:
            role = _role(row)
            result.append((role, _assignment(RoleAssignment, role.id, row)))
        return result

    async def upsert_permission_assignment(
        self, assignment: PermissionAssignment
    ) -> PermissionAssignment:
        await self._upsert("permission_user", "permission_id", assignment)
        return assignment

    async def delete_permission_assignments(
        self, actor_id: ActorId, permission_ids: Iterable[int]
    ) -> None:
        await self._executemany(
            "DELETE FROM permission_user WHERE user_id = $1 AND permission_id = $2",
            [(str(actor_id), pid) for pid in permission_ids],
        )

    async def list_permission_assignments(
        self, actor_id: ActorId
    ) -> List[Tuple[Permission, PermissionAssignment]]:
        rows = await self._fetch(
            f"SELECT {_select('p', _PERMISSION_FIELDS)}, {_select('pu', _ASSIGNMENT_FIELDS, 'a_')} "
            "FROM permission_user pu JOIN permissions p ON p.id = pu.permission_id "
            "WHERE pu.user_id = $1 ORDER BY p.id",
            str(actor_id),
        )
        result = []
        for row in rows:
            permission = _permission(row)
            result.append((permission, _assignment(PermissionAssignment, permission.id, row)))
        return result

    async def _detach_actor(self, actor_id: ActorId) -> None:
        await self._execute("DELETE FROM role_user WHERE user_id = $1", str(actor_id))
        await self._execute("DELETE FROM permission_user WHERE user_id = $1", str(actor_id))
