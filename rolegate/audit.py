"""Audit logging utilities for role and permission mutations."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from pydantic import BaseModel, Field

from .config import AuditConfig
from .models import utcnow

logger = logging.getLogger("rolegate.audit")


class AuditEntry(BaseModel):
    """A single recorded mutation."""

    event: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class AuditLog:
    """Records role/permission mutations to the ``rolegate.audit`` logger.

    The most recent entries are also kept in memory for inspection.
    """

    def __init__(self, config: Optional[AuditConfig] = None, max_entries: int = 1000) -> None:
        self.config = config or AuditConfig()
        self._entries: Deque[AuditEntry] = deque(maxlen=max_entries)

    def is_enabled(self, event: str) -> bool:
        return self.config.enabled and event in self.config.events

    async def record(self, event: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Persist an audit log entry if ``event`` is enabled."""
        if not self.is_enabled(event):
            return
        entry = AuditEntry(event=event, details=details or {})
        self._entries.append(entry)
        logger.info(f"{event} {entry.details}")

    @property
    def entries(self) -> List[AuditEntry]:
        return list(self._entries)
