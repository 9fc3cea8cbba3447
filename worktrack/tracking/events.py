"""Execution lifecycle events."""

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..diff.models import DiffStats

logger = logging.getLogger(__name__)


class ExecutionEventType(str, Enum):
    """Lifecycle event names."""

    STARTED = "execution-started"
    COMPLETED = "execution-completed"
    CANCELLED = "execution-cancelled"


class ExecutionEvent(BaseModel):
    """Event published to listeners."""

    type: ExecutionEventType
    session_id: str
    execution_sequence: int
    diff_id: Optional[int] = Field(default=None)
    stats: Optional[DiffStats] = Field(default=None)


ExecutionListener = Callable[[ExecutionEvent], None]


class EventNotifier:
    """Delivers execution events to explicitly subscribed listeners."""

    def __init__(self):
        self._listeners: list[tuple[ExecutionListener, frozenset[ExecutionEventType] | None]] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        listener: ExecutionListener,
        event_types: list[ExecutionEventType] | None = None,
    ) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Called with each matching event
            event_types: Restrict delivery to these types (all when None)

        Returns:
            Function that removes the subscription
        """
        entry = (listener, frozenset(event_types) if event_types else None)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event: ExecutionEvent) -> None:
        """Deliver an event to every matching listener.

        A failing listener is logged and does not prevent delivery to the rest.
        """
        with self._lock:
            listeners = list(self._listeners)

        for listener, event_types in listeners:
            if event_types is not None and event.type not in event_types:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener failed for {event.type.value} ({event.session_id})")
