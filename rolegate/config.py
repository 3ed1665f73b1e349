from __future__ import annotations

import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class RedisConfig(BaseModel):
    """Configuration for the Redis cache backend."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class CacheConfig(BaseModel):
    """Permission cache settings."""

    enabled: bool = True
    ttl: int = Field(default=86400, ge=0, description="Time-to-live in seconds")
    prefix: str = "rolegate"
    tags: List[str] = Field(default_factory=lambda: ["rolegate"])
    backend: Literal["memory", "redis"] = "memory"
    redis: RedisConfig = Field(default_factory=RedisConfig)


class SuperAdminConfig(BaseModel):
    """Super-admin bypass policy."""

    enabled: bool = True
    role: str = "super-admin"
    permission: str = "*"


class HierarchyConfig(BaseModel):
    """Role hierarchy settings. ``max_depth`` of 0 means unlimited."""

    enabled: bool = True
    inherit_permissions: bool = True
    max_depth: int = Field(default=10, ge=0)


class WildcardConfig(BaseModel):
    """Wildcard permission matching settings."""

    enabled: bool = True
    separator: str = "."
    character: str = "*"
    bidirectional: bool = True


DEFAULT_AUDIT_EVENTS = [
    "role_created",
    "role_updated",
    "role_deleted",
    "permission_created",
    "permission_updated",
    "permission_deleted",
    "role_assigned",
    "role_revoked",
    "permission_assigned",
    "permission_revoked",
]


class AuditConfig(BaseModel):
    """Which mutation events are written to the audit trail."""

    enabled: bool = True
    events: List[str] = Field(default_factory=lambda: list(DEFAULT_AUDIT_EVENTS))


class RbacConfig(BaseModel):
    """Top-level configuration model."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    super_admin: SuperAdminConfig = Field(default_factory=SuperAdminConfig)
    hierarchy: HierarchyConfig = Field(default_factory=HierarchyConfig)
    wildcards: WildcardConfig = Field(default_factory=WildcardConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> RbacConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to ROLEGATE_CONFIG env
            variable or 'rolegate.yaml' in the current directory.
    """

    config_path = path or os.getenv("ROLEGATE_CONFIG", "rolegate.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = RbacConfig(**data)
    else:
        config = RbacConfig()

    env_db_url = os.getenv("ROLEGATE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
