"""Permission cache and backend tests."""

import pytest

from rolegate.cache import CacheKeyGenerator, InMemoryCacheBackend, PermissionCache
from rolegate.cache.base import BaseCacheBackend
from rolegate.config import CacheConfig
from rolegate.exceptions import CacheBackendError
from rolegate.models import Permission, Role


class FailingBackend(BaseCacheBackend):
    """Backend whose every call fails, like an unreachable Redis."""

    async def get(self, key):
        raise CacheBackendError("down")

    async def set(self, key, value, ttl=None, tags=()):
        raise CacheBackendError("down")

    async def delete(self, *keys):
        raise CacheBackendError("down")


class PatternFailingBackend(InMemoryCacheBackend):
    """In-memory backend whose tag and pattern deletes fail."""

    async def invalidate_tags(self, tags):
        raise CacheBackendError("tags down")

    async def delete_pattern(self, pattern):
        raise CacheBackendError("scan down")


class Counter:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


def test_keys_are_namespaced_and_deterministic():
    keys = CacheKeyGenerator("acme")
    assert keys.for_user_permissions(42) == "acme:user_permissions_42"
    assert keys.for_user_roles("u-1") == "acme:user_roles_u-1"
    assert keys.for_role_permissions(3) == "acme:role_permissions_3"
    assert keys.for_role_by_name("admin") == keys.for_role_by_name("admin")
    assert keys.for_role_by_name("admin").startswith("acme:role_name_")
    assert keys.for_role_by_name("admin") != keys.for_role_by_name("editor")
    assert keys.all_pattern() == "acme:*"


@pytest.mark.asyncio
async def test_backend_ttl_expiry(clock):
    backend = InMemoryCacheBackend(clock=clock.monotonic)
    await backend.set("k", "v", ttl=10)
    await backend.set("forever", "v")
    assert await backend.get("k") == "v"

    clock.advance(seconds=10)
    assert await backend.get("k") is None
    assert await backend.get("forever") == "v"


@pytest.mark.asyncio
async def test_backend_tags_and_patterns():
    backend = InMemoryCacheBackend()
    await backend.set("rolegate:a", "1", tags=["rolegate"])
    await backend.set("rolegate:b", "2")
    await backend.set("other:c", "3")

    await backend.invalidate_tags(["rolegate"])
    assert backend.keys() == ["rolegate:b", "other:c"]

    await backend.delete_pattern("rolegate:*")
    assert backend.keys() == ["other:c"]

    await backend.clear()
    assert len(backend) == 0


@pytest.mark.asyncio
async def test_remember_loads_once_and_skips_none():
    cache = PermissionCache(InMemoryCacheBackend())
    loader = Counter({"x": 1})
    assert await cache.remember("rolegate:k", loader) == {"x": 1}
    assert await cache.remember("rolegate:k", loader) == {"x": 1}
    assert loader.calls == 1

    missing = Counter(None)
    await cache.remember("rolegate:none", missing)
    await cache.remember("rolegate:none", missing)
    assert missing.calls == 2


@pytest.mark.asyncio
async def test_disabled_cache_always_loads():
    cache = PermissionCache(InMemoryCacheBackend(), CacheConfig(enabled=False))
    loader = Counter([1])
    await cache.remember("rolegate:k", loader)
    await cache.remember("rolegate:k", loader)
    assert loader.calls == 2

    await cache.put_actor_roles(1, [Role(id=1, name="admin")])
    assert await cache.get_actor_roles(1) is None

    cache.enable()
    assert cache.enabled


@pytest.mark.asyncio
async def test_actor_sets_round_trip_models(clock):
    backend = InMemoryCacheBackend(clock=clock.monotonic)
    cache = PermissionCache(backend)
    await cache.put_actor_permissions(5, [Permission(id=1, name="posts.read", resource="posts")])
    await cache.put_actor_roles(5, [Role(id=2, name="writer", level=3)])

    permissions = await cache.get_actor_permissions(5)
    roles = await cache.get_actor_roles(5)
    assert permissions[0].name == "posts.read" and permissions[0].resource == "posts"
    assert roles[0].level == 3

    await cache.forget_actor(5)
    assert await cache.get_actor_permissions(5) is None
    assert await cache.get_actor_roles(5) is None


@pytest.mark.asyncio
async def test_ttl_is_capped_by_caller(clock):
    backend = InMemoryCacheBackend(clock=clock.monotonic)
    cache = PermissionCache(backend)
    await cache.put_actor_roles(1, [Role(id=1, name="temp")], ttl=30)
    clock.advance(seconds=29)
    assert await cache.get_actor_roles(1) is not None
    clock.advance(seconds=1)
    assert await cache.get_actor_roles(1) is None

    # under a second left: nothing is written
    await cache.put_actor_roles(2, [Role(id=1, name="temp")], ttl=0.5)
    assert await cache.get_actor_roles(2) is None


@pytest.mark.asyncio
async def test_flush_drops_every_entry():
    backend = InMemoryCacheBackend()
    cache = PermissionCache(backend)
    await cache.put_actor_roles(1, [Role(id=1, name="a")])
    await cache.get_all_roles(Counter([Role(id=1, name="a")]))
    assert len(backend) == 2

    await cache.flush()
    assert len(backend) == 0


@pytest.mark.asyncio
async def test_flush_without_tags_uses_prefix_pattern():
    backend = InMemoryCacheBackend()
    await backend.set("unrelated", "x")
    cache = PermissionCache(backend, CacheConfig(tags=[]))
    await cache.put_actor_roles(1, [Role(id=1, name="a")])

    await cache.flush()
    assert backend.keys() == ["unrelated"]


@pytest.mark.asyncio
async def test_flush_on_key_value_backend_deletes_written_keys(key_value_backend):
    backend = key_value_backend
    backend.data["unrelated"] = "x"
    cache = PermissionCache(backend)
    await cache.put_actor_permissions(1, [Permission(id=1, name="posts.read")])
    await cache.get_role_permissions(3, Counter([Permission(id=2, name="posts.edit")]))

    await cache.flush()
    assert backend.data == {"unrelated": "x"}


@pytest.mark.asyncio
async def test_flush_clears_backend_when_tags_and_patterns_fail():
    backend = PatternFailingBackend()
    cache = PermissionCache(backend)
    await cache.put_actor_roles(1, [Role(id=1, name="a")])

    await cache.flush()
    assert len(backend) == 0


@pytest.mark.asyncio
async def test_backend_failures_read_as_misses():
    cache = PermissionCache(FailingBackend())
    loader = Counter([Permission(id=1, name="posts.read")])

    permissions = await cache.get_all_permissions(loader)
    assert [p.name for p in permissions] == ["posts.read"]
    assert await cache.get_actor_permissions(1) is None

    # writes, deletes and flushes are swallowed
    await cache.put_actor_permissions(1, permissions)
    await cache.forget_actor(1)
    await cache.flush()


@pytest.mark.asyncio
async def test_redis_backend_round_trip():
    from rolegate.cache.redis import RedisCacheBackend

    backend = RedisCacheBackend(tag_prefix="rolegate_test_tag:")
    try:
        await backend.connect()
    except CacheBackendError:
        pytest.skip("Redis server not available")

    cache = PermissionCache(backend, CacheConfig(prefix="rolegate_test", tags=["rolegate_test"]))
    try:
        await cache.put_actor_roles("r1", [Role(id=1, name="admin")], ttl=60)
        assert [r.name for r in await cache.get_actor_roles("r1")] == ["admin"]
        await cache.flush()
        assert await cache.get_actor_roles("r1") is None
    finally:
        await backend.disconnect()


@pytest.mark.asyncio
async def test_forget_role_drops_only_that_role():
    cache = PermissionCache(InMemoryCacheBackend())
    first = Counter([Permission(id=1, name="posts.read")])
    second = Counter([Permission(id=2, name="posts.edit")])
    await cache.get_role_permissions(1, first)
    await cache.get_role_permissions(2, second)

    await cache.forget_role(1)
    await cache.get_role_permissions(1, first)
    await cache.get_role_permissions(2, second)
    assert (first.calls, second.calls) == (2, 1)
