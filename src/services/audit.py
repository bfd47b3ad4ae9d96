"""
Claim Lifecycle Audit Sink.

Records status transitions, secondary claim generation and monitoring
alerts. Sinks are async collaborators so a durable implementation can write
to a database or queue; the logging sink writes structured loguru records.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.core.enums import AuditAction
from src.utils.logging import get_logger

logger = get_logger(__name__)


class AuditEvent(BaseModel):
    """Claim lifecycle audit event."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    action: AuditAction
    claim_id: Optional[str] = None
    claim_number: Optional[str] = None
    actor_id: Optional[str] = None  # None = system-originated
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: dict[str, Any] = Field(default_factory=dict)


class AuditSink(ABC):
    """Destination for audit events."""

    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Persist or forward one event."""
        pass


class LoggingAuditSink(AuditSink):
    """Writes audit events as structured log records."""

    def __init__(self):
        self._logger = logger.bind(audit=True)

    async def record(self, event: AuditEvent) -> None:
        self._logger.bind(
            event_id=event.event_id,
            claim_id=event.claim_id,
            actor_id=event.actor_id,
            details=event.details,
        ).info(f"AUDIT {event.action.value}: claim={event.claim_number or event.claim_id}")


class InMemoryAuditSink(AuditSink):
    """Collects events in memory (tests, demo mode)."""

    def __init__(self, max_events: int = 100000):
        """
        Args:
            max_events: Maximum events to keep in memory
        """
        self._max_events = max_events
        self._events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self._events.append(event)
        if len(self._events) > self._max_events:
            self._events = self._events[-self._max_events:]

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    def by_action(self, action: AuditAction) -> list[AuditEvent]:
        return [e for e in self._events if e.action == action]

    def for_claim(self, claim_id: str) -> list[AuditEvent]:
        return [e for e in self._events if e.claim_id == claim_id]

    def clear(self) -> None:
        self._events.clear()
