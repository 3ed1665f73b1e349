"""Role/permission management, super-admin policy and audit trail."""

import pytest

from rolegate.config import RbacConfig
from rolegate.engine import build_engine
from rolegate.exceptions import (
    HierarchyError,
    PermissionAlreadyExistsError,
    PermissionNotFoundError,
    ProtectedEntityError,
    RoleAlreadyExistsError,
    RoleNotFoundError,
)
from rolegate.models import ActorRef
from rolegate.store import InMemoryEntityStore


@pytest.mark.asyncio
async def test_super_admin_passes_every_check(engine):
    await engine.create_role("super-admin")
    root, user = ActorRef(id="root"), ActorRef(id="user")
    await engine.assign_role(root, "super-admin")

    assert await engine.is_super_admin(root)
    assert await engine.has_permission(root, "anything.at.all")
    assert await engine.has_permission(root, "*")
    assert not await engine.is_super_admin(user)
    assert not await engine.has_permission(user, "*")


@pytest.mark.asyncio
async def test_held_super_literal_is_not_a_glob(engine):
    await engine.create_permission("*")
    actor = ActorRef(id=1)
    await engine.give_permission_to(actor, "*")
    assert not await engine.has_permission(actor, "posts.read")
    assert not await engine.has_permission(actor, "*")


@pytest.mark.asyncio
async def test_super_admin_policy_is_reconfigurable(engine):
    await engine.create_role("root")
    await engine.create_role("super-admin")
    actor = ActorRef(id=1)
    await engine.assign_role(actor, "root")
    assert not await engine.has_permission(actor, "posts.read")

    engine.config.super_admin.role = "root"
    assert await engine.has_permission(actor, "posts.read")

    engine.config.super_admin.enabled = False
    assert not await engine.is_super_admin(actor)
    assert not await engine.has_permission(actor, "posts.read")


@pytest.mark.asyncio
async def test_create_rejects_duplicates(engine):
    await engine.create_role("admin")
    await engine.create_permission("posts.read")
    with pytest.raises(RoleAlreadyExistsError):
        await engine.create_role("admin")
    with pytest.raises(PermissionAlreadyExistsError):
        await engine.create_permission("posts.read")


@pytest.mark.asyncio
async def test_find_or_create_and_or_fail(engine):
    created = await engine.find_or_create_role("editor", level=3)
    again = await engine.find_or_create_role("editor", level=99)
    assert created.id == again.id and again.level == 3

    permission = await engine.find_or_create_permission("posts.publish")
    assert (permission.resource, permission.action) == ("posts", "publish")

    assert (await engine.find_role_or_fail("editor")).id == created.id
    with pytest.raises(RoleNotFoundError):
        await engine.find_role_or_fail("ghost")
    with pytest.raises(PermissionNotFoundError):
        await engine.find_permission_or_fail("ghost.read")
    assert await engine.find_role("ghost") is None


@pytest.mark.asyncio
async def test_delete_role_removes_links_and_assignments(engine, store):
    await engine.create_role("writer")
    await engine.create_permission("posts.create")
    await engine.give_permission_to_role("writer", "posts.create")
    actor = ActorRef(id=1)
    await engine.assign_role(actor, "writer")
    assert await engine.has_permission(actor, "posts.create")

    assert await engine.delete_role("writer")
    assert await engine.find_role("writer") is None
    assert await store.list_role_assignments(1) == []
    assert not await engine.has_permission(actor, "posts.create")


@pytest.mark.asyncio
async def test_system_entities_are_protected(engine):
    await engine.create_role("owner", is_system=True)
    await engine.create_permission("system.manage", is_system=True)
    actor = ActorRef(id=1)
    await engine.assign_role(actor, "owner")

    with pytest.raises(ProtectedEntityError) as exc_info:
        await engine.delete_role("owner")
    assert exc_info.value.kind == "role"
    with pytest.raises(ProtectedEntityError):
        await engine.delete_permission("system.manage")

    # nothing was touched
    assert await engine.has_role(actor, "owner")
    assert await engine.find_permission("system.manage") is not None


@pytest.mark.asyncio
async def test_delete_unknown_names_raise(engine):
    with pytest.raises(RoleNotFoundError):
        await engine.delete_role("ghost")
    with pytest.raises(PermissionNotFoundError):
        await engine.delete_permission("ghost.read")


@pytest.mark.asyncio
async def test_set_parent_validates_hierarchy(engine):
    await engine.create_role("viewer")
    await engine.create_role("writer", parent="viewer")
    await engine.create_role("editor")
    await engine.create_permission("posts.read")
    await engine.give_permission_to_role("viewer", "posts.read")
    actor = ActorRef(id=1)
    await engine.assign_role(actor, "editor")
    assert not await engine.has_permission(actor, "posts.read")

    updated = await engine.set_parent("editor", "writer")
    assert updated.parent_id == (await engine.find_role("writer")).id
    assert await engine.has_permission(actor, "posts.read")

    with pytest.raises(HierarchyError):
        await engine.set_parent("viewer", "editor")
    with pytest.raises(HierarchyError):
        await engine.set_parent("editor", "editor")

    await engine.set_parent("editor", None)
    assert not await engine.has_permission(actor, "posts.read")


@pytest.mark.asyncio
async def test_create_role_rejects_parent_beyond_max_depth(engine):
    engine.config.hierarchy.max_depth = 1
    await engine.create_role("a")
    await engine.create_role("b", parent="a")
    with pytest.raises(HierarchyError):
        await engine.create_role("c", parent="b")
    assert await engine.find_role("c") is None


@pytest.mark.asyncio
async def test_sync_role_permissions(engine):
    await engine.create_role("writer")
    for name in ("posts.read", "posts.create", "posts.delete"):
        await engine.create_permission(name)
    await engine.give_permission_to_role("writer", ["posts.read", "posts.create"])
    await engine.sync_role_permissions("writer", ["posts.create", "posts.delete"])

    names = {p.name for p in await engine.get_role_permissions("writer")}
    assert names == {"posts.create", "posts.delete"}
    assert await engine.role_has_permission("writer", "posts.delete")
    assert not await engine.role_has_permission("writer", "posts.read")


@pytest.mark.asyncio
async def test_crud_permissions_and_resource_lookups(engine):
    created = await engine.create_crud_permissions("posts")
    assert [p.name for p in created] == ["posts.create", "posts.read", "posts.update", "posts.delete"]
    again = await engine.create_crud_permissions("posts", ["read", "publish"])
    assert again[0].id == created[1].id

    await engine.create_permission("users.invite")
    assert await engine.get_resources() == ["posts", "users"]
    assert await engine.get_actions_for_resource("posts") == [
        "create",
        "delete",
        "publish",
        "read",
        "update",
    ]
    assert [p.name for p in await engine.get_permissions_by_resource("users")] == ["users.invite"]

    await engine.create_permission("users.remove")
    # creating a permission refreshes the by-resource lookup
    assert len(await engine.get_permissions_by_resource("users")) == 2


@pytest.mark.asyncio
async def test_all_roles_lists_only_active(engine):
    await engine.create_role("a")
    await engine.create_role("b")
    await engine.deactivate_role("b")
    assert [r.name for r in await engine.get_all_roles()] == ["a"]

    await engine.create_permission("x.read")
    assert [p.name for p in await engine.get_all_permissions_list()] == ["x.read"]


@pytest.mark.asyncio
async def test_build_and_clear_cache(engine, cache_backend):
    await engine.create_role("a")
    await engine.create_permission("x.read")
    assert await engine.build_cache() == (1, 1)
    assert len(cache_backend) >= 4

    actor = ActorRef(id=1)
    await engine.get_roles(actor)
    await engine.clear_cache(actor)
    assert engine.cache.keys.for_user_roles(1) not in cache_backend.keys()

    await engine.clear_cache()
    assert len(cache_backend) == 0


@pytest.mark.asyncio
async def test_mutations_are_audited(engine):
    await engine.create_role("admin")
    await engine.create_permission("posts.read")
    actor = ActorRef(id=1)
    await engine.assign_role(actor, "admin", assigned_by=ActorRef(id=99))
    await engine.remove_role(actor, "admin")

    events = [entry.event for entry in engine.audit.entries]
    assert events == ["role_created", "permission_created", "role_assigned", "role_revoked"]
    assert engine.audit.entries[2].details["role"] == "admin"


@pytest.mark.asyncio
async def test_assigned_by_is_recorded(engine, store):
    await engine.create_role("admin")
    await engine.assign_role(ActorRef(id=1), "admin", assigned_by=ActorRef(id=99))
    _, assignment = (await store.list_role_assignments(1))[0]
    assert assignment.assigned_by == 99


@pytest.mark.asyncio
async def test_audit_respects_configured_events(store):
    config = RbacConfig()
    config.audit.events = ["role_deleted"]
    engine = build_engine(config=config, store=store)
    await engine.create_role("temp")
    await engine.delete_role("temp")
    assert [entry.event for entry in engine.audit.entries] == ["role_deleted"]


def test_build_engine_from_config(tmp_path):
    config = RbacConfig(database_url=f"sqlite://{tmp_path / 'rbac.db'}")
    engine = build_engine(config=config)
    assert engine.store.db_path == str(tmp_path / "rbac.db")
    assert engine.config is config

    other = build_engine(config=RbacConfig(), store=InMemoryEntityStore())
    assert other.store is not engine.store
