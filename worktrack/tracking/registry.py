"""In-memory registry of active executions."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .lifecycle import ExecutionPhase, check_transition

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """State of one tracked execution."""

    session_id: str
    worktree_path: Path
    before_commit_hash: str
    execution_sequence: int
    prompt_marker_id: Optional[int] = None
    prompt: Optional[str] = None
    phase: ExecutionPhase = ExecutionPhase.ACTIVE
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def advance(self, new_phase: ExecutionPhase) -> None:
        """Move to the next lifecycle phase.

        Raises:
            LifecycleError: If the transition is invalid
        """
        check_transition(self.phase, new_phase)
        logger.debug(
            f"Execution {self.session_id}#{self.execution_sequence}: "
            f"{self.phase.value} -> {new_phase.value}"
        )
        self.phase = new_phase


class ExecutionContextRegistry:
    """Thread-safe map of session id to its active execution.

    Holds at most one context per session; storing a context for a session
    that is already tracked replaces the old one.
    """

    def __init__(self):
        self._contexts: dict[str, ExecutionContext] = {}
        self._lock = threading.Lock()

    def put(self, context: ExecutionContext) -> ExecutionContext | None:
        """Store a context, returning the one it replaced."""
        with self._lock:
            previous = self._contexts.get(context.session_id)
            self._contexts[context.session_id] = context
        if previous is not None:
            logger.warning(
                f"Replacing active execution #{previous.execution_sequence} "
                f"for session {context.session_id}"
            )
        return previous

    def get(self, session_id: str) -> ExecutionContext | None:
        with self._lock:
            return self._contexts.get(session_id)

    def pop(self, session_id: str) -> ExecutionContext | None:
        with self._lock:
            return self._contexts.pop(session_id, None)

    def discard(self, context: ExecutionContext) -> bool:
        """Remove a context only if it is still the registered one."""
        with self._lock:
            if self._contexts.get(context.session_id) is context:
                del self._contexts[context.session_id]
                return True
            return False

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._contexts

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._contexts)
