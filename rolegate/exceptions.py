"""Error taxonomy for the permission-resolution engine."""

from __future__ import annotations

from typing import Iterable, List, Optional


class RbacError(Exception):
    """Base exception for rolegate."""

    def __init__(self, message: str = "An RBAC error occurred.") -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(RbacError):
    """A role or permission looked up by name does not exist."""

    kind = "entity"

    def __init__(self, name: str, message: Optional[str] = None) -> None:
        self.name = name
        super().__init__(message or f"{self.kind.capitalize()} '{name}' not found.")


class RoleNotFoundError(NotFoundError):
    kind = "role"


class PermissionNotFoundError(NotFoundError):
    kind = "permission"


class AlreadyExistsError(RbacError):
    """Create was called with a name that already resolves."""

    kind = "entity"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"A {self.kind} with name '{name}' already exists.")


class RoleAlreadyExistsError(AlreadyExistsError):
    kind = "role"


class PermissionAlreadyExistsError(AlreadyExistsError):
    kind = "permission"


class ProtectedEntityError(RbacError):
    """Delete attempted on a system role or permission."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"Cannot delete system {kind} '{name}'.")


class HierarchyError(RbacError):
    """A parent assignment would create a cycle or exceed the maximum depth."""


class CacheBackendError(RbacError):
    """Raised by cache backends; never escapes the cache layer."""


class UnauthorizedError(RbacError):
    """Raised by the authorization layer when a decision is ``False``.

    Carries the roles and permissions that would have satisfied the check so
    callers can build diagnostic messages.
    """

    def __init__(
        self,
        message: str = "User does not have the required authorization.",
        required_roles: Optional[List[str]] = None,
        required_permissions: Optional[List[str]] = None,
        status_code: int = 403,
    ) -> None:
        super().__init__(message)
        self.required_roles = list(required_roles or [])
        self.required_permissions = list(required_permissions or [])
        self.status_code = status_code

    @classmethod
    def for_roles(cls, roles: Iterable[str]) -> "UnauthorizedError":
        roles = list(roles)
        return cls(
            f"User does not have any of the required roles: {', '.join(roles)}",
            required_roles=roles,
        )

    @classmethod
    def for_permissions(cls, permissions: Iterable[str]) -> "UnauthorizedError":
        permissions = list(permissions)
        return cls(
            f"User does not have any of the required permissions: {', '.join(permissions)}",
            required_permissions=permissions,
        )

    @classmethod
    def for_roles_or_permissions(
        cls, roles: Iterable[str], permissions: Iterable[str]
    ) -> "UnauthorizedError":
        roles = list(roles)
        permissions = list(permissions)
        return cls(
            "User does not have any of the required roles "
            f"({', '.join(roles)}) or permissions ({', '.join(permissions)}).",
            required_roles=roles,
            required_permissions=permissions,
        )

    @classmethod
    def not_logged_in(cls) -> "UnauthorizedError":
        return cls("User is not logged in.", status_code=401)

    def to_dict(self) -> dict:
        return {
            "error": "unauthorized",
            "message": self.message,
            "required_roles": self.required_roles,
            "required_permissions": self.required_permissions,
        }
