"""Session store with atomic writes."""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from ..commit.modes import CommitMode
from .models import (
    CreateExecutionDiffData,
    ExecutionDiffRecord,
    SessionOutput,
    SessionRecord,
    SessionStoreState,
)

logger = logging.getLogger(__name__)


class SessionStoreError(Exception):
    """Session store error."""

    pass


class SessionStore(Protocol):
    """Session operations the execution tracker depends on."""

    def get_next_execution_sequence(self, session_id: str) -> int: ...

    def get_session(self, session_id: str) -> Optional[SessionRecord]: ...

    def add_session_output(self, session_id: str, output: SessionOutput) -> None: ...

    def create_execution_diff(self, data: CreateExecutionDiffData) -> ExecutionDiffRecord: ...

    def get_execution_diffs(self, session_id: str) -> list[ExecutionDiffRecord]: ...


class JsonSessionStore:
    """Session store persisted to a single JSON file."""

    def __init__(self, path: Path):
        """Initialize store, loading existing state if present.

        Args:
            path: Store file path

        Raises:
            SessionStoreError: If an existing store file cannot be read
        """
        self.path = Path(path)
        self._lock = threading.RLock()
        self.state = self._load()

    def _load(self) -> SessionStoreState:
        if not self.path.exists():
            return SessionStoreState()

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return SessionStoreState(**data)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            raise SessionStoreError(f"Invalid session store {self.path}: {e}")

    def _save(self) -> None:
        """Write state with an atomic rename."""
        self.state.updated_at = datetime.now(timezone.utc).isoformat()
        self.path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = self.path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(self.state.model_dump(mode="json"), f, indent=2)
            f.flush()
        temp_path.replace(self.path)

    def create_session(
        self,
        session_id: str,
        worktree_path: Path,
        commit_mode: CommitMode | None = None,
        commit_mode_settings: str | None = None,
        auto_commit: bool | None = None,
    ) -> SessionRecord:
        """Register a session, replacing any existing record with the same id."""
        record = SessionRecord(
            session_id=session_id,
            worktree_path=str(worktree_path),
            commit_mode=commit_mode,
            commit_mode_settings=commit_mode_settings,
            auto_commit=auto_commit,
        )
        with self._lock:
            existing = self.state.sessions.get(session_id)
            if existing is not None:
                record.last_execution_sequence = existing.last_execution_sequence
            self.state.sessions[session_id] = record
            self._save()
        logger.info(f"Registered session {session_id} ({worktree_path})")
        return record

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self.state.sessions.get(session_id)

    def get_next_execution_sequence(self, session_id: str) -> int:
        """Allocate the next execution ordinal for a session.

        Raises:
            SessionStoreError: If the session is unknown
        """
        with self._lock:
            session = self.state.sessions.get(session_id)
            if session is None:
                raise SessionStoreError(f"Unknown session: {session_id}")
            session.last_execution_sequence += 1
            self._save()
            return session.last_execution_sequence

    def add_session_output(self, session_id: str, output: SessionOutput) -> None:
        with self._lock:
            self.state.outputs.setdefault(session_id, []).append(output)
            self._save()

    def get_session_outputs(self, session_id: str) -> list[SessionOutput]:
        with self._lock:
            return list(self.state.outputs.get(session_id, []))

    def create_execution_diff(self, data: CreateExecutionDiffData) -> ExecutionDiffRecord:
        """Store a diff record and assign its id."""
        with self._lock:
            record = ExecutionDiffRecord(id=self.state.next_diff_id, **data.model_dump())
            self.state.next_diff_id += 1
            self.state.execution_diffs.append(record)
            self._save()
        return record

    def get_execution_diffs(self, session_id: str) -> list[ExecutionDiffRecord]:
        """Get a session's diff records ordered by execution sequence."""
        with self._lock:
            records = [d for d in self.state.execution_diffs if d.session_id == session_id]
        return sorted(records, key=lambda d: (d.execution_sequence, d.id))
