"""Simple example showing roles, inheritance and wildcard checks."""

import asyncio

from rolegate import ActorRef, RbacConfig, build_engine
from rolegate.store import InMemoryEntityStore


async def main():
    """Basic permission resolution example."""
    # In-memory store, default policy
    engine = build_engine(config=RbacConfig(), store=InMemoryEntityStore())

    # Define roles and permissions
    await engine.create_crud_permissions("posts")
    await engine.create_permission("comments.*")
    await engine.create_role("writer", level=10)
    await engine.create_role("editor", level=20, parent="writer")
    await engine.give_permission_to_role("writer", "posts.create", "posts.read")
    await engine.give_permission_to_role("editor", "posts.update", "comments.*")

    alice = ActorRef(id=1, name="alice")
    await engine.assign_role(alice, "editor")

    print(f"✅ Roles: {await engine.get_role_names(alice)}")
    print(f"📋 Permissions: {sorted(await engine.get_permission_names(alice))}")
    print(f"🔗 Inherited posts.create: {await engine.has_permission(alice, 'posts.create')}")
    print(f"🔗 Wildcard comments.delete: {await engine.has_permission(alice, 'comments.delete')}")
    print(f"⛔ posts.delete: {await engine.has_permission(alice, 'posts.delete')}")


if __name__ == "__main__":
    asyncio.run(main())
