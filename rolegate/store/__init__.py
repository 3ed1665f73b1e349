"""Entity store adapters for roles, permissions and assignments."""

from __future__ import annotations

import os
from typing import Optional

from ..config import RbacConfig, load_config
from .base import BaseEntityStore
from .inmemory import InMemoryEntityStore
from .sqlite import SQLiteEntityStore

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresEntityStore
except ImportError:  # pragma: no cover - optional dependency
    PostgresEntityStore = None  # type: ignore


def get_store(
    database_url: Optional[str] = None, config: Optional[RbacConfig] = None
) -> BaseEntityStore:
    """Factory function to obtain an entity store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``ROLEGATE_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("ROLEGATE_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        return InMemoryEntityStore()

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteEntityStore(path)
    if database_url.startswith("postgres://") or database_url.startswith("postgresql://"):
        if PostgresEntityStore is None:
            raise RuntimeError("Postgres support not available")
        return PostgresEntityStore(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "BaseEntityStore",
    "InMemoryEntityStore",
    "SQLiteEntityStore",
    "PostgresEntityStore",
    "get_store",
]
