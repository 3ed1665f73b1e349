"""Authorization gate and handler decorators built on the engine."""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple, Union

from .engine import RbacEngine
from .exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]
Requirement = Union[str, Iterable[str]]


def _names(requirement: Requirement) -> List[str]:
    """Normalize ``"a|b"``, ``"a"`` or ``["a", "b"]`` into a list of names."""
    if isinstance(requirement, str):
        return [part.strip() for part in requirement.split("|") if part.strip()]
    names: List[str] = []
    for item in requirement:
        names.extend(_names(item))
    return names


class Gate:
    """Turns engine decisions into allow/deny answers and exceptions."""

    def __init__(self, engine: RbacEngine) -> None:
        self.engine = engine

    def parse_roles_or_permissions(self, expression: Requirement) -> Tuple[List[str], List[str]]:
        """Split ``expression`` into ``(roles, permissions)``.

        Tokens containing the permission separator are permissions; all
        others are roles.
        """
        separator = self.engine.config.wildcards.separator
        roles: List[str] = []
        permissions: List[str] = []
        for token in _names(expression):
            (permissions if separator in token else roles).append(token)
        return roles, permissions

    async def allows(self, actor: Any, ability: Requirement) -> bool:
        if actor is None:
            return False
        return await self.engine.has_permission(actor, _names(ability))

    async def denies(self, actor: Any, ability: Requirement) -> bool:
        return not await self.allows(actor, ability)

    async def authorize_permissions(self, actor: Any, permissions: Requirement) -> None:
        if actor is None:
            raise UnauthorizedError.not_logged_in()
        names = _names(permissions)
        if not await self.engine.has_any_permission(actor, names):
            logger.info(f"Denied actor {self.engine.identify(actor)}: needs one of {names}")
            raise UnauthorizedError.for_permissions(names)

    async def authorize_roles(self, actor: Any, roles: Requirement) -> None:
        if actor is None:
            raise UnauthorizedError.not_logged_in()
        names = _names(roles)
        if not await self.engine.has_any_role(actor, names):
            logger.info(f"Denied actor {self.engine.identify(actor)}: needs role {names}")
            raise UnauthorizedError.for_roles(names)

    async def authorize_roles_or_permissions(self, actor: Any, expression: Requirement) -> None:
        if actor is None:
            raise UnauthorizedError.not_logged_in()
        roles, permissions = self.parse_roles_or_permissions(expression)
        if roles and await self.engine.has_any_role(actor, roles):
            return
        if permissions and await self.engine.has_any_permission(actor, permissions):
            return
        logger.info(
            f"Denied actor {self.engine.identify(actor)}: needs {roles} or {permissions}"
        )
        raise UnauthorizedError.for_roles_or_permissions(roles, permissions)


def _guarded(check: Callable[[Any], Awaitable[None]]) -> Callable[[Handler], Handler]:
    def decorator(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def _wrapper(actor: Optional[Any], *args: Any, **kwargs: Any) -> Any:
            await check(actor)
            return await handler(actor, *args, **kwargs)

        return _wrapper

    return decorator


def require_permission(gate: Gate, *permissions: str) -> Callable[[Handler], Handler]:
    """Allow the handler only if its actor holds any of ``permissions``."""
    return _guarded(lambda actor: gate.authorize_permissions(actor, permissions))


def require_role(gate: Gate, *roles: str) -> Callable[[Handler], Handler]:
    return _guarded(lambda actor: gate.authorize_roles(actor, roles))


def require_role_or_permission(gate: Gate, *expression: str) -> Callable[[Handler], Handler]:
    """Accept ``"admin|posts.edit"`` style requirements."""
    return _guarded(lambda actor: gate.authorize_roles_or_permissions(actor, expression))
