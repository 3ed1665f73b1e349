"""Shared fixtures for rolegate tests."""

from datetime import datetime, timedelta, timezone

import pytest

from rolegate.cache import InMemoryCacheBackend, PermissionCache
from rolegate.cache.base import BaseCacheBackend
from rolegate.config import RbacConfig
from rolegate.engine import RbacEngine
from rolegate.store import InMemoryEntityStore


class FakeClock:
    """Controllable wall clock shared by the engine and the cache backend."""

    def __init__(self, start: datetime = datetime(2030, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class KeyValueBackend(BaseCacheBackend):
    """Plain get/set/delete store with no tags, patterns or clear."""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ttl=None, tags=()):
        self.data[key] = value

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return RbacConfig()


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def cache_backend(clock):
    return InMemoryCacheBackend(clock=clock.monotonic)


@pytest.fixture
def key_value_backend():
    return KeyValueBackend()


@pytest.fixture
def engine(store, cache_backend, config, clock):
    cache = PermissionCache(cache_backend, config.cache)
    return RbacEngine(store, cache, config, clock=clock)


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Keep tests independent of any rolegate.yaml or database in the environment."""
    monkeypatch.setenv("ROLEGATE_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("ROLEGATE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("ROLEGATE_CACHE_BACKEND", raising=False)
