"""Command line interface for managing roles, permissions and assignments."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer

from rolegate.engine import RbacEngine, build_engine
from rolegate.exceptions import RbacError
from rolegate.models import ActorRef

T = TypeVar("T")

app = typer.Typer(help="CLI for rolegate roles and permissions")

# Command groups
role_app = typer.Typer(help="Commands for managing roles")
permission_app = typer.Typer(help="Commands for managing permissions")
cache_app = typer.Typer(help="Commands for the permission cache")

app.add_typer(role_app, name="role")
app.add_typer(permission_app, name="permission")
app.add_typer(cache_app, name="cache")


@app.callback()
def main() -> None:
    """rolegate CLI entry point."""
    pass


def _run(action: Callable[[RbacEngine], Awaitable[T]]) -> T:
    """Run ``action`` against a freshly built engine and report RBAC errors."""

    async def _main() -> T:
        engine = build_engine()
        await engine.store.connect()
        try:
            return await action(engine)
        finally:
            await engine.store.close()
            await engine.cache.backend.disconnect()

    try:
        return asyncio.run(_main())
    except RbacError as exc:
        typer.secho(exc.message, fg=typer.colors.RED)
        raise typer.Exit(code=1)


@role_app.command("create")
def role_create(
    name: str,
    display_name: Optional[str] = typer.Option(None, help="Human readable name"),
    description: Optional[str] = None,
    level: int = typer.Option(0, help="Rank used to pick an actor's highest role"),
    parent: Optional[str] = typer.Option(None, help="Role to inherit permissions from"),
    system: bool = typer.Option(False, help="Protect the role from deletion"),
) -> None:
    """
    Create a new role.

    Example:
        rolegate role create editor --level 10 --parent writer
    """
    role = _run(
        lambda engine: engine.create_role(
            name,
            display_name=display_name,
            description=description,
            level=level,
            parent=parent,
            is_system=system,
        )
    )
    typer.echo(f"Role '{role.name}' created (id {role.id})")


@role_app.command("list")
def role_list() -> None:
    """List active roles with their level and display name."""
    roles = _run(lambda engine: engine.get_all_roles())
    if not roles:
        typer.echo("No roles found")
        return
    for role in sorted(roles, key=lambda r: (-r.level, r.name)):
        typer.echo(f"{role.name}\t{role.level}\t{role.display_name}")


@role_app.command("delete")
def role_delete(name: str) -> None:
    """Delete a role with its permission links and assignments."""
    _run(lambda engine: engine.delete_role(name))
    typer.echo(f"Role '{name}' deleted")


@permission_app.command("create")
def permission_create(
    name: str,
    display_name: Optional[str] = typer.Option(None, help="Human readable name"),
    description: Optional[str] = None,
    system: bool = typer.Option(False, help="Protect the permission from deletion"),
) -> None:
    """
    Create a new permission.

    Resource and action are derived from the name, e.g. ``posts.edit``.
    """
    permission = _run(
        lambda engine: engine.create_permission(
            name, display_name=display_name, description=description, is_system=system
        )
    )
    typer.echo(f"Permission '{permission.name}' created (id {permission.id})")


@permission_app.command("crud")
def permission_crud(
    resource: str,
    actions: List[str] = typer.Option(
        ["create", "read", "update", "delete"], "--action", help="Action to create"
    ),
) -> None:
    """
    Create the standard permissions for a resource.

    Example:
        rolegate permission crud posts
        rolegate permission crud posts --action read --action publish
    """
    permissions = _run(lambda engine: engine.create_crud_permissions(resource, actions))
    for permission in permissions:
        typer.echo(permission.name)


@permission_app.command("list")
def permission_list(
    resource: Optional[str] = typer.Option(None, help="Only show this resource"),
) -> None:
    """List active permissions."""

    async def _load(engine: RbacEngine):
        if resource:
            return await engine.get_permissions_by_resource(resource)
        return await engine.get_all_permissions_list()

    permissions = _run(_load)
    if not permissions:
        typer.echo("No permissions found")
        return
    for permission in sorted(permissions, key=lambda p: p.name):
        typer.echo(f"{permission.name}\t{permission.display_name}")


@permission_app.command("delete")
def permission_delete(name: str) -> None:
    """Delete a permission with its links and assignments."""
    _run(lambda engine: engine.delete_permission(name))
    typer.echo(f"Permission '{name}' deleted")


@app.command("assign")
def assign(
    actor: str,
    role: str,
    expires_at: Optional[datetime] = typer.Option(
        None, help="Assignment stops being effective at this time (UTC)"
    ),
) -> None:
    """
    Assign a role to an actor.

    Example:
        rolegate assign 42 editor --expires-at 2030-01-01T00:00:00
    """
    _run(lambda engine: engine.assign_role(ActorRef(id=actor), role, expires_at=expires_at))
    suffix = f" until {expires_at.isoformat()}" if expires_at else ""
    typer.echo(f"Assigned role '{role}' to {actor}{suffix}")


@app.command("revoke")
def revoke(actor: str, role: str) -> None:
    """Remove a role from an actor."""
    _run(lambda engine: engine.remove_role(ActorRef(id=actor), role))
    typer.echo(f"Removed role '{role}' from {actor}")


@app.command("show")
def show(
    actor: Optional[str] = typer.Option(None, help="Show effective roles/permissions for this actor"),
    roles: bool = typer.Option(False, "--roles", help="Only show roles"),
    permissions: bool = typer.Option(False, "--permissions", help="Only show permissions"),
) -> None:
    """
    Show roles and permissions, globally or for one actor.

    Example:
        rolegate show
        rolegate show --actor 42 --permissions
    """
    show_roles = roles or not permissions
    show_permissions = permissions or not roles

    async def _load(engine: RbacEngine):
        if actor is None:
            return await engine.get_all_roles(), await engine.get_all_permissions_list()
        ref = ActorRef(id=actor)
        return await engine.get_roles(ref), await engine.get_all_permissions(ref)

    role_rows, permission_rows = _run(_load)
    if show_roles:
        typer.echo("Roles:")
        for role in sorted(role_rows, key=lambda r: r.name):
            typer.echo(f"  {role.name}")
        if not role_rows:
            typer.echo("  (none)")
    if show_permissions:
        typer.echo("Permissions:")
        for permission in sorted(permission_rows, key=lambda p: p.name):
            typer.echo(f"  {permission.name}")
        if not permission_rows:
            typer.echo("  (none)")


@cache_app.command("reset")
def cache_reset() -> None:
    """Flush every cached role, permission and actor lookup."""
    _run(lambda engine: engine.clear_cache())
    typer.echo("Permission cache flushed")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
