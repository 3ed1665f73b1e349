"""Data models for roles, permissions and their assignments."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

ActorId = Union[int, str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so comparisons never mix the two."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _humanize(name: str, separators: str) -> str:
    for sep in separators:
        name = name.replace(sep, " ")
    return " ".join(part.capitalize() for part in name.split())


class Role(BaseModel):
    """A named bundle of permissions, optionally inheriting from a parent."""

    id: Optional[int] = None
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    level: int = 0
    parent_id: Optional[int] = None
    is_system: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _default_display_name(self) -> "Role":
        if not self.display_name:
            self.display_name = _humanize(self.name, "-_")
        return self

    def same_as(self, other: "Role") -> bool:
        if self.id is not None and other.id is not None:
            return self.id == other.id
        return self.name == other.name


class Permission(BaseModel):
    """A named capability, conventionally ``<resource><separator><action>``."""

    id: Optional[int] = None
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    resource: Optional[str] = None
    action: Optional[str] = None
    is_system: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _default_display_name(self) -> "Permission":
        if not self.display_name:
            self.display_name = _humanize(self.name, "-_.")
        return self

    @classmethod
    def from_name(cls, name: str, separator: str = ".", **attributes: Any) -> "Permission":
        """Build a permission, deriving ``resource``/``action`` from ``name``."""
        attributes = {k: v for k, v in attributes.items() if v is not None}
        parts = name.split(separator)
        if len(parts) >= 2:
            attributes.setdefault("resource", parts[0])
            attributes.setdefault("action", parts[1])
        return cls(name=name, **attributes)


class Assignment(BaseModel):
    """Grant of an entity (role or permission) to an actor."""

    entity_id: int
    actor_id: ActorId
    assigned_by: Optional[ActorId] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("expires_at")
    @classmethod
    def _normalize_expiry(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = ensure_utc(now) or utcnow()
        # expiring exactly "now" counts as expired
        return self.expires_at <= now

    def is_effective(self, entity_active: bool = True, now: Optional[datetime] = None) -> bool:
        return self.is_active and entity_active and not self.is_expired(now)


class RoleAssignment(Assignment):
    """Role granted to an actor."""


class PermissionAssignment(Assignment):
    """Permission granted directly to an actor, bypassing roles."""


class ActorRef(BaseModel):
    """Minimal actor handle implementing :class:`~rolegate.contracts.Authorizable`."""

    id: ActorId
    name: Optional[str] = None

    def get_auth_identifier(self) -> ActorId:
        return self.id
