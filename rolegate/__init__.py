"""rolegate: role-based access control with hierarchies, wildcards and caching."""

from .cache import PermissionCache, get_cache
from .config import RbacConfig, load_config
from .contracts import Authorizable
from .engine import RbacEngine, build_engine
from .exceptions import (
    AlreadyExistsError,
    HierarchyError,
    NotFoundError,
    PermissionNotFoundError,
    ProtectedEntityError,
    RbacError,
    RoleNotFoundError,
    UnauthorizedError,
)
from .guard import Gate, require_permission, require_role, require_role_or_permission
from .models import ActorRef, Permission, PermissionAssignment, Role, RoleAssignment
from .store import get_store

__version__ = "0.1.0"
__all__ = [
    "ActorRef",
    "AlreadyExistsError",
    "Authorizable",
    "Gate",
    "HierarchyError",
    "NotFoundError",
    "Permission",
    "PermissionAssignment",
    "PermissionCache",
    "PermissionNotFoundError",
    "ProtectedEntityError",
    "RbacConfig",
    "RbacEngine",
    "RbacError",
    "Role",
    "RoleAssignment",
    "RoleNotFoundError",
    "UnauthorizedError",
    "build_engine",
    "get_cache",
    "get_store",
    "load_config",
    "require_permission",
    "require_role",
    "require_role_or_permission",
]
