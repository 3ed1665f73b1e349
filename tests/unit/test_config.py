"""Tests for configuration loading."""

import pytest

from rolegate.cache import get_cache_backend
from rolegate.cache.inmemory import InMemoryCacheBackend
from rolegate.cache.redis import RedisCacheBackend
from rolegate.config import RbacConfig, load_config
from rolegate.store import InMemoryEntityStore, SQLiteEntityStore, get_store


def test_defaults_without_config_file():
    config = load_config()
    assert config.cache.ttl == 86400
    assert config.cache.prefix == "rolegate"
    assert config.super_admin.role == "super-admin"
    assert config.super_admin.permission == "*"
    assert config.hierarchy.max_depth == 10
    assert config.wildcards.separator == "."
    assert config.wildcards.bidirectional is True
    assert "role_assigned" in config.audit.events
    assert config.database_url is None


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
cache:
  backend: redis
  ttl: 60
  redis:
    host: testhost
    port: 1234
hierarchy:
  max_depth: 2
wildcards:
  bidirectional: false
"""
    )
    monkeypatch.setenv("ROLEGATE_CONFIG", str(config_path))

    config = load_config()
    assert config.cache.backend == "redis"
    assert config.cache.ttl == 60
    assert config.cache.redis.host == "testhost"
    assert config.cache.redis.port == 1234
    assert config.hierarchy.max_depth == 2
    assert config.wildcards.bidirectional is False
    # untouched sections keep their defaults
    assert config.super_admin.enabled is True


def test_explicit_path_and_empty_file(tmp_path):
    config_path = tmp_path / "empty.yaml"
    config_path.write_text("")
    assert load_config(str(config_path)) == RbacConfig()


def test_database_url_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite://{tmp_path / 'rbac.db'}")
    config = load_config()
    assert config.database_url.startswith("sqlite://")

    monkeypatch.setenv("ROLEGATE_DATABASE_URL", "postgresql://localhost/rbac")
    assert load_config().database_url == "postgresql://localhost/rbac"


def test_get_store_uses_config(tmp_path):
    assert isinstance(get_store(config=RbacConfig()), InMemoryEntityStore)

    config = RbacConfig(database_url=f"sqlite://{tmp_path / 'rbac.db'}")
    store = get_store(config=config)
    assert isinstance(store, SQLiteEntityStore)
    assert store.db_path == str(tmp_path / "rbac.db")


def test_get_store_rejects_unknown_scheme():
    with pytest.raises(ValueError):
        get_store("mysql://localhost/rbac", config=RbacConfig())


def test_get_cache_backend_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
cache:
  backend: redis
  prefix: acme
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("ROLEGATE_CONFIG", str(config_path))

    backend = get_cache_backend()
    assert isinstance(backend, RedisCacheBackend)
    assert backend.host == "confighost"
    assert backend.port == 6380
    assert backend.tag_prefix == "acme_tag:"

    monkeypatch.setenv("ROLEGATE_CACHE_BACKEND", "memory")
    assert isinstance(get_cache_backend(), InMemoryCacheBackend)
