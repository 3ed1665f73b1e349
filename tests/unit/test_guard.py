"""Authorization gate and decorator tests."""

import pytest

from rolegate.exceptions import UnauthorizedError
from rolegate.guard import Gate, require_permission, require_role, require_role_or_permission
from rolegate.models import ActorRef


@pytest.fixture
def gate(engine):
    return Gate(engine)


async def _seed(engine):
    await engine.create_role("admin")
    await engine.create_role("editor")
    await engine.create_permission("posts.edit")
    await engine.create_permission("posts.delete")
    await engine.give_permission_to_role("editor", "posts.edit")


def test_parse_roles_or_permissions(gate):
    assert gate.parse_roles_or_permissions("admin|posts.edit|editor") == (
        ["admin", "editor"],
        ["posts.edit"],
    )
    assert gate.parse_roles_or_permissions(["admin", "posts.edit | posts.delete"]) == (
        ["admin"],
        ["posts.edit", "posts.delete"],
    )
    assert gate.parse_roles_or_permissions("") == ([], [])


@pytest.mark.asyncio
async def test_allows_and_denies(engine, gate):
    await _seed(engine)
    actor = ActorRef(id=1)
    await engine.assign_role(actor, "editor")

    assert await gate.allows(actor, "posts.edit")
    assert await gate.allows(actor, "posts.delete|posts.edit")
    assert await gate.denies(actor, "posts.delete")
    assert not await gate.allows(None, "posts.edit")


@pytest.mark.asyncio
async def test_authorize_raises_with_requirements(engine, gate):
    await _seed(engine)
    actor = ActorRef(id=1)

    with pytest.raises(UnauthorizedError) as exc_info:
        await gate.authorize_permissions(actor, "posts.edit|posts.delete")
    assert exc_info.value.required_permissions == ["posts.edit", "posts.delete"]
    assert exc_info.value.status_code == 403

    with pytest.raises(UnauthorizedError) as exc_info:
        await gate.authorize_roles(actor, ["admin", "editor"])
    assert exc_info.value.required_roles == ["admin", "editor"]

    with pytest.raises(UnauthorizedError) as exc_info:
        await gate.authorize_roles_or_permissions(actor, "admin|posts.delete")
    error = exc_info.value
    assert error.to_dict() == {
        "error": "unauthorized",
        "message": error.message,
        "required_roles": ["admin"],
        "required_permissions": ["posts.delete"],
    }

    await engine.assign_role(actor, "editor")
    await gate.authorize_permissions(actor, "posts.edit")
    await gate.authorize_roles(actor, "editor")
    await gate.authorize_roles_or_permissions(actor, "admin|posts.edit")


@pytest.mark.asyncio
async def test_missing_actor_is_not_logged_in(gate):
    with pytest.raises(UnauthorizedError) as exc_info:
        await gate.authorize_roles(None, "admin")
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_decorators_guard_handlers(engine, gate):
    await _seed(engine)

    @require_permission(gate, "posts.edit")
    async def edit_post(actor, post_id):
        return f"{actor.id} edited {post_id}"

    @require_role(gate, "admin")
    async def purge(actor):
        return "purged"

    @require_role_or_permission(gate, "admin|posts.delete")
    async def delete_post(actor, post_id):
        return f"deleted {post_id}"

    editor = ActorRef(id="e")
    await engine.assign_role(editor, "editor")

    assert await edit_post(editor, 7) == "e edited 7"
    assert edit_post.__name__ == "edit_post"
    with pytest.raises(UnauthorizedError):
        await purge(editor)
    with pytest.raises(UnauthorizedError):
        await delete_post(editor, post_id=7)
    with pytest.raises(UnauthorizedError) as exc_info:
        await edit_post(None, 7)
    assert exc_info.value.status_code == 401

    await engine.give_permission_to(editor, "posts.delete")
    assert await delete_post(editor, post_id=7) == "deleted 7"


@pytest.mark.asyncio
async def test_raw_actor_ids_are_denied_with_requirements(engine, gate):
    await _seed(engine)

    with pytest.raises(UnauthorizedError) as exc_info:
        await gate.authorize_permissions(7, "posts.delete")
    assert exc_info.value.required_permissions == ["posts.delete"]

    with pytest.raises(UnauthorizedError) as exc_info:
        await gate.authorize_roles("7", "admin")
    assert exc_info.value.required_roles == ["admin"]

    with pytest.raises(UnauthorizedError):
        await gate.authorize_roles_or_permissions(7, "admin|posts.edit")

    await engine.assign_role(7, "editor")
    await gate.authorize_permissions(7, "posts.edit")
