"""SQLite implementation of the entity store."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

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

_ROLE_COLUMNS = (
    "id, name, display_name, description, level, parent_id, is_system, is_active, "
    "created_at, updated_at"
)
_PERMISSION_COLUMNS = (
    "id, name, display_name, description, resource, action, is_system, is_active, "
    "created_at, updated_at"
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _role_from_row(row: sqlite3.Row, offset: int = 0) -> Role:
    return Role(
        id=row[offset],
        name=row[offset + 1],
        display_name=row[offset + 2],
        description=row[offset + 3],
        level=row[offset + 4],
        parent_id=row[offset + 5],
        is_system=bool(row[offset + 6]),
        is_active=bool(row[offset + 7]),
        created_at=_dt(row[offset + 8]),
        updated_at=_dt(row[offset + 9]),
    )


def _permission_from_row(row: sqlite3.Row, offset: int = 0) -> Permission:
    return Permission(
        id=row[offset],
        name=row[offset + 1],
        display_name=row[offset + 2],
        description=row[offset + 3],
        resource=row[offset + 4],
        action=row[offset + 5],
        is_system=bool(row[offset + 6]),
        is_active=bool(row[offset + 7]),
        created_at=_dt(row[offset + 8]),
        updated_at=_dt(row[offset + 9]),
    )


class SQLiteEntityStore(BaseEntityStore):
    """Persist roles, permissions and assignments using SQLite."""

    def __init__(self, db_path: str | Path):
        super().__init__()
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS roles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                display_name TEXT,
                description TEXT,
                level INTEGER NOT NULL DEFAULT 0,
                parent_id INTEGER REFERENCES roles(id) ON DELETE SET NULL,
                is_system INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT,
                updated_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS permissions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                display_name TEXT,
                description TEXT,
                resource TEXT,
                action TEXT,
                is_system INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT,
                updated_at TEXT
            )
            """
        )
        cur.execute(
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
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    {fk} INTEGER NOT NULL REFERENCES {ref}(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    assigned_by TEXT,
                    expires_at TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT,
                    updated_at TEXT,
                    UNIQUE ({fk}, user_id)
                )
                """
            )
            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_user ON {table} (user_id, is_active)"
            )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.lastrowid

    def _executemany(self, query: str, rows: list[tuple]) -> None:
        cur = self._conn.cursor()
        cur.executemany(query, rows)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)

    # ------------------------------------------------------------------
    # Roles
    async def create_role(self, role: Role) -> Role:
        try:
            role_id = await asyncio.to_thread(
                self._execute,
                "INSERT INTO roles (name, display_name, description, level, parent_id, "
                "is_system, is_active, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                role.name,
                role.display_name,
                role.description,
                role.level,
                role.parent_id,
                int(role.is_system),
                int(role.is_active),
                _ts(role.created_at),
                _ts(role.updated_at),
            )
        except sqlite3.IntegrityError as exc:
            raise RoleAlreadyExistsError(role.name) from exc
        return role.model_copy(update={"id": role_id})

    async def update_role(self, role: Role) -> Role:
        role = role.model_copy(update={"updated_at": utcnow()})
        await asyncio.to_thread(
            self._execute,
            "UPDATE roles SET name = ?, display_name = ?, description = ?, level = ?, "
            "parent_id = ?, is_system = ?, is_active = ?, updated_at = ? WHERE id = ?",
            role.name,
            role.display_name,
            role.description,
            role.level,
            role.parent_id,
            int(role.is_system),
            int(role.is_active),
            _ts(role.updated_at),
            role.id,
        )
        return role

    async def delete_role(self, role_id: int) -> None:
        await asyncio.to_thread(self._execute, "DELETE FROM roles WHERE id = ?", role_id)

    async def get_role(self, role_id: int) -> Optional[Role]:
        row = await asyncio.to_thread(
            self._fetchone, f"SELECT {_ROLE_COLUMNS} FROM roles WHERE id = ?", role_id
        )
        return _role_from_row(row) if row else None

    async def find_role_by_name(self, name: str) -> Optional[Role]:
        row = await asyncio.to_thread(
            self._fetchone, f"SELECT {_ROLE_COLUMNS} FROM roles WHERE name = ?", name
        )
        return _role_from_row(row) if row else None

    async def list_roles(self) -> List[Role]:
        rows = await asyncio.to_thread(
            self._fetchall, f"SELECT {_ROLE_COLUMNS} FROM roles ORDER BY id"
        )
        return [_role_from_row(r) for r in rows]

    async def children_of(self, role_id: int) -> List[Role]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_ROLE_COLUMNS} FROM roles WHERE parent_id = ? ORDER BY id",
            role_id,
        )
        return [_role_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Permissions
    async def create_permission(self, permission: Permission) -> Permission:
        try:
            permission_id = await asyncio.to_thread(
                self._execute,
                "INSERT INTO permissions (name, display_name, description, resource, action, "
                "is_system, is_active, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                permission.name,
                permission.display_name,
                permission.description,
                permission.resource,
                permission.action,
                int(permission.is_system),
                int(permission.is_active),
                _ts(permission.created_at),
                _ts(permission.updated_at),
            )
        except sqlite3.IntegrityError as exc:
            raise PermissionAlreadyExistsError(permission.name) from exc
        return permission.model_copy(update={"id": permission_id})

    async def update_permission(self, permission: Permission) -> Permission:
        permission = permission.model_copy(update={"updated_at": utcnow()})
        await asyncio.to_thread(
            self._execute,
            "UPDATE permissions SET name = ?, display_name = ?, description = ?, resource = ?, "
            "action = ?, is_system = ?, is_active = ?, updated_at = ? WHERE id = ?",
            permission.name,
            permission.display_name,
            permission.description,
            permission.resource,
            permission.action,
            int(permission.is_system),
            int(permission.is_active),
            _ts(permission.updated_at),
            permission.id,
        )
        return permission

    async def delete_permission(self, permission_id: int) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM permissions WHERE id = ?", permission_id
        )

    async def get_permission(self, permission_id: int) -> Optional[Permission]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_PERMISSION_COLUMNS} FROM permissions WHERE id = ?",
            permission_id,
        )
        return _permission_from_row(row) if row else None

    async def find_permission_by_name(self, name: str) -> Optional[Permission]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_PERMISSION_COLUMNS} FROM permissions WHERE name = ?",
            name,
        )
        return _permission_from_row(row) if row else None

    async def list_permissions(self) -> List[Permission]:
        rows = await asyncio.to_thread(
            self._fetchall, f"SELECT {_PERMISSION_COLUMNS} FROM permissions ORDER BY id"
        )
        return [_permission_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Role <-> permission links
    async def list_permissions_of_role(self, role_id: int) -> List[Permission]:
        columns = ", ".join(f"p.{c.strip()}" for c in _PERMISSION_COLUMNS.split(","))
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {columns} FROM permissions p "
            "JOIN permission_role pr ON pr.permission_id = p.id "
            "WHERE pr.role_id = ? ORDER BY p.id",
            role_id,
        )
        return [_permission_from_row(r) for r in rows]

    async def attach_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        await asyncio.to_thread(
            self._executemany,
            "INSERT OR IGNORE INTO permission_role (permission_id, role_id) VALUES (?, ?)",
            [(pid, role_id) for pid in permission_ids],
        )

    async def detach_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None:
        await asyncio.to_thread(
            self._executemany,
            "DELETE FROM permission_role WHERE permission_id = ? AND role_id = ?",
            [(pid, role_id) for pid in permission_ids],
        )

    # ------------------------------------------------------------------
    # Assignments
    def _upsert_query(self, table: str, fk: str) -> str:
        return (
            f"INSERT INTO {table} ({fk}, user_id, assigned_by, expires_at, is_active, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?) "
            f"ON CONFLICT ({fk}, user_id) DO UPDATE SET "
            "assigned_by = excluded.assigned_by, expires_at = excluded.expires_at, "
            "is_active = excluded.is_active, updated_at = excluded.updated_at"
        )

    def _assignment_params(self, assignment) -> tuple:
        return (
            assignment.entity_id,
            str(assignment.actor_id),
            str(assignment.assigned_by) if assignment.assigned_by is not None else None,
            _ts(assignment.expires_at),
            int(assignment.is_active),
            _ts(assignment.created_at),
            _ts(utcnow()),
        )

    async def upsert_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        await asyncio.to_thread(
            self._execute,
            self._upsert_query("role_user", "role_id"),
            *self._assignment_params(assignment),
        )
        return assignment

    async def delete_role_assignments(self, actor_id: ActorId, role_ids: Iterable[int]) -> None:
        await asyncio.to_thread(
            self._executemany,
            "DELETE FROM role_user WHERE user_id = ? AND role_id = ?",
            [(str(actor_id), rid) for rid in role_ids],
        )

    async def list_role_assignments(
        self, actor_id: ActorId
    ) -> List[Tuple[Role, RoleAssignment]]:
        columns = ", ".join(f"r.{c.strip()}" for c in _ROLE_COLUMNS.split(","))
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {columns}, ru.user_id, ru.assigned_by, ru.expires_at, ru.is_active, "
            "ru.created_at, ru.updated_at FROM role_user ru "
            "JOIN roles r ON r.id = ru.role_id WHERE ru.user_id = ? ORDER BY r.id",
            str(actor_id),
        )
        result = []
        for row in rows:
            role = _role_from_row(row)
            result.append((role, self._assignment_from_row(RoleAssignment, role.id, row, 10)))
        return result

    async def upsert_permission_assignment(
        self, assignment: PermissionAssignment
    ) -> PermissionAssignment:
        await asyncio.to_thread(
            self._execute,
            self._upsert_query("permission_user", "permission_id"),
            *self._assignment_params(assignment),
        )
        return assignment

    async def delete_permission_assignments(
        self, actor_id: ActorId, permission_ids: Iterable[int]
    ) -> None:
        await asyncio.to_thread(
            self._executemany,
            "DELETE FROM permission_user WHERE user_id = ? AND permission_id = ?",
            [(str(actor_id), pid) for pid in permission_ids],
        )

    async def list_permission_assignments(
        self, actor_id: ActorId
    ) -> List[Tuple[Permission, PermissionAssignment]]:
        columns = ", ".join(f"p.{c.strip()}" for c in _PERMISSION_COLUMNS.split(","))
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {columns}, pu.user_id, pu.assigned_by, pu.expires_at, pu.is_active, "
            "pu.created_at, pu.updated_at FROM permission_user pu "
            "JOIN permissions p ON p.id = pu.permission_id WHERE pu.user_id = ? ORDER BY p.id",
            str(actor_id),
        )
        result = []
        for row in rows:
            permission = _permission_from_row(row)
            result.append(
                (
                    permission,
                    self._assignment_from_row(PermissionAssignment, permission.id, row, 10),
                )
            )
        return result

    @staticmethod
    def _assignment_from_row(model, entity_id: int, row: sqlite3.Row, offset: int):
        return model(
            entity_id=entity_id,
            actor_id=row[offset],
            assigned_by=row[offset + 1],
            expires_at=_dt(row[offset + 2]),
            is_active=bool(row[offset + 3]),
            created_at=_dt(row[offset + 4]),
            updated_at=_dt(row[offset + 5]),
        )

    async def _detach_actor(self, actor_id: ActorId) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM role_user WHERE user_id = ?", str(actor_id)
        )
        await asyncio.to_thread(
            self._execute, "DELETE FROM permission_user WHERE user_id = ?", str(actor_id)
        )
