"""Glob-style matching between held permission names and requested names."""

from __future__ import annotations

import fnmatch
from typing import Optional, Tuple

from .config import WildcardConfig


class WildcardMatcher:
    """Decide whether a held permission name authorizes a requested name.

    Exact equality always matches. With wildcards enabled, a held pattern
    (``users.*``) authorizes a concrete request (``users.create``) and, when
    ``bidirectional`` is set, a concrete held name satisfies a pattern
    request. The super-permission literal is never globbed.
    """

    def __init__(self, config: Optional[WildcardConfig] = None, super_permission: str = "*") -> None:
        self.config = config or WildcardConfig()
        self.super_permission = super_permission

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def is_pattern(self, name: str) -> bool:
        return self.config.character in name

    def matches(self, held: str, requested: str) -> bool:
        if held == requested:
            return True
        if not self.config.enabled or held == self.super_permission:
            return False
        if self._glob(held, requested):
            return True
        return self.config.bidirectional and self._glob(requested, held)

    def _glob(self, pattern: str, name: str) -> bool:
        if not self.is_pattern(pattern):
            return False
        return fnmatch.fnmatchcase(name, self._to_glob(pattern))

    def _to_glob(self, pattern: str) -> str:
        char = self.config.character
        if char == "*":
            return pattern
        return pattern.replace("*", "[*]").replace(char, "*")

    def split(self, name: str) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(resource, action)`` parsed from ``name``."""
        parts = name.split(self.config.separator)
        if len(parts) < 2:
            return None, None
        return parts[0], parts[1]

    def join(self, resource: str, action: str) -> str:
        return f"{resource}{self.config.separator}{action}"
