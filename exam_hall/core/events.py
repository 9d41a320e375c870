"""State-change events emitted by the exam manager.

Terminals still poll. Events exist so a notifier (for example a
publish/subscribe bridge) can be attached without touching the state machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import enum
import logging
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    TERMINAL_REGISTERED = "terminal_registered"
    TERMINAL_APPROVED = "terminal_approved"
    TERMINAL_REJECTED = "terminal_rejected"
    TERMINAL_DELETED = "terminal_deleted"
    STUDENT_ASSIGNED = "student_assigned"
    STUDENT_UNASSIGNED = "student_unassigned"
    LIVE_STATUS_REPORTED = "live_status_reported"
    EXAM_SCHEDULED = "exam_scheduled"
    EXAM_UPDATED = "exam_updated"
    EXAM_STARTED = "exam_started"
    EXAM_ENDED = "exam_ended"
    EXAM_DELETED = "exam_deleted"
    EXAM_SUBMITTED = "exam_submitted"
    STUDENT_DELETED = "student_deleted"


@dataclass(frozen=True, slots=True)
class SessionEvent:
    kind: EventKind
    actor: str
    occurred_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[SessionEvent], None]


class EventBus:
    """Fan-out of session events to in-process listeners."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self._lock = Lock()

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: SessionEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                # A broken listener must not undo a committed transition.
                logger.exception("Event listener failed for %s", event.kind.value)
