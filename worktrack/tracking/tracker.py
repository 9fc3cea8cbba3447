"""Execution tracking for agent sessions.

An execution is bracketed by `start_execution` and `end_execution`. The
start records HEAD of the session worktree; the end applies the session's
commit policy, captures what changed and stores exactly one diff record.
"""

import logging
from pathlib import Path

from ..commit.manager import DEFAULT_STRUCTURED_TIMEOUT_MS, CommitManager
from ..commit.messages import (
    CommitStatusMessage,
    post_commit_message,
    structured_wait_message,
)
from ..commit.modes import DEFAULT_CHECKPOINT_PREFIX, CommitMode, resolve_commit_settings
from ..diff.capture import DiffCapture
from ..diff.models import GitDiffResult
from ..sessions.models import CreateExecutionDiffData, ExecutionDiffRecord, SessionOutput
from ..sessions.store import SessionStore
from ..utils.logging import get_logger
from .events import EventNotifier, ExecutionEvent, ExecutionEventType
from .lifecycle import TERMINAL_PHASES, ExecutionPhase
from .registry import ExecutionContext, ExecutionContextRegistry

logger = logging.getLogger(__name__)


class ExecutionTracker:
    """Tracks agent executions and records their diffs.

    Calls for different sessions may run concurrently. Calls for the same
    session must be issued one at a time by the caller.
    """

    def __init__(
        self,
        sessions: SessionStore,
        diff_capture: DiffCapture,
        commit_manager: CommitManager,
        notifier: EventNotifier | None = None,
        registry: ExecutionContextRegistry | None = None,
        structured_timeout_ms: int = DEFAULT_STRUCTURED_TIMEOUT_MS,
        default_checkpoint_prefix: str = DEFAULT_CHECKPOINT_PREFIX,
    ):
        """Initialize tracker.

        Args:
            sessions: Session store
            diff_capture: Repository access for hashes and diffs
            commit_manager: Applies commit policies
            notifier: Receives lifecycle events
            registry: Active execution contexts
            structured_timeout_ms: Bound on waiting for an agent commit
            default_checkpoint_prefix: Prefix when settings do not define one
        """
        self.sessions = sessions
        self.diff_capture = diff_capture
        self.commit_manager = commit_manager
        self.notifier = notifier or EventNotifier()
        self.registry = registry or ExecutionContextRegistry()
        self.structured_timeout_ms = structured_timeout_ms
        self.default_checkpoint_prefix = default_checkpoint_prefix

    async def start_execution(
        self,
        session_id: str,
        worktree_path: Path,
        prompt_marker_id: int | None = None,
        prompt: str | None = None,
    ) -> ExecutionContext:
        """Start tracking a new execution.

        Args:
            session_id: Session identifier
            worktree_path: Session worktree
            prompt_marker_id: Prompt marker the execution belongs to
            prompt: Prompt sent to the agent

        Returns:
            The registered ExecutionContext

        Raises:
            Exception: Sequence allocation or HEAD lookup failures, after logging
        """
        try:
            logger.debug(f"Starting execution tracking for session {session_id}")
            execution_sequence = self.sessions.get_next_execution_sequence(session_id)
            before_commit_hash = await self.diff_capture.get_current_commit_hash(worktree_path)
        except Exception:
            logger.exception(f"Failed to start execution tracking for session {session_id}")
            raise

        context = ExecutionContext(
            session_id=session_id,
            worktree_path=Path(worktree_path),
            before_commit_hash=before_commit_hash,
            execution_sequence=execution_sequence,
            prompt_marker_id=prompt_marker_id,
            prompt=prompt,
        )
        self.registry.put(context)
        logger.info(
            f"Tracking execution #{execution_sequence} for session {session_id} "
            f"from {before_commit_hash[:8]}"
        )

        self.notifier.emit(
            ExecutionEvent(
                type=ExecutionEventType.STARTED,
                session_id=session_id,
                execution_sequence=execution_sequence,
            )
        )
        return context

    async def end_execution(self, session_id: str) -> ExecutionDiffRecord | None:
        """Finish tracking: commit, capture the diff and store it.

        Args:
            session_id: Session identifier

        Returns:
            The stored diff record, or None if the session was not tracked

        Raises:
            Exception: Failures that prevent capturing or storing the diff,
                after the context has been removed
        """
        context = self.registry.get(session_id)
        if context is None:
            logger.warning(f"No active execution found for session {session_id}")
            return None

        try:
            record = await self._finish(context)
            # Emitted before the context is released
            self.notifier.emit(
                ExecutionEvent(
                    type=ExecutionEventType.COMPLETED,
                    session_id=session_id,
                    execution_sequence=context.execution_sequence,
                    diff_id=record.id,
                    stats=record.stats,
                )
            )
        except Exception:
            logger.exception(f"Failed to end execution tracking for session {session_id}")
            if context.phase not in TERMINAL_PHASES:
                context.advance(ExecutionPhase.FAILED)
            raise
        finally:
            self.registry.discard(context)

        return record

    async def _finish(self, context: ExecutionContext) -> ExecutionDiffRecord:
        session_id = context.session_id
        log = get_logger(__name__, session_id, context.execution_sequence)
        log.debug("Ending execution tracking")

        context.advance(ExecutionPhase.RESOLVING_COMMIT_MODE)
        session = self.sessions.get_session(session_id)
        settings = resolve_commit_settings(session, self.default_checkpoint_prefix)
        log.debug(f"Commit mode: {settings.mode.value}")

        context.advance(ExecutionPhase.COMMITTING)
        commit_result = await self.commit_manager.handle_post_prompt_commit(
            session_id,
            context.worktree_path,
            settings,
            context.prompt,
            context.execution_sequence,
        )
        self._report(session_id, post_commit_message(settings.mode, commit_result))

        if settings.mode == CommitMode.STRUCTURED:
            context.advance(ExecutionPhase.WAITING_FOR_STRUCTURED_COMMIT)
            wait_result = await self.commit_manager.wait_for_structured_commit(
                session_id,
                context.worktree_path,
                self.structured_timeout_ms,
                baseline_hash=context.before_commit_hash,
            )
            if not wait_result.success:
                log.warning(f"Structured commit not detected: {wait_result.error}")
            self._report(session_id, structured_wait_message(wait_result))

        context.advance(ExecutionPhase.CAPTURING_DIFF)
        after_commit_hash = await self.diff_capture.get_current_commit_hash(context.worktree_path)
        if after_commit_hash == context.before_commit_hash:
            execution_diff = await self.diff_capture.capture_working_directory_diff(
                context.worktree_path
            )
            log.debug("No commit during execution")
        else:
            execution_diff = await self.diff_capture.capture_commit_diff(
                context.worktree_path,
                context.before_commit_hash,
                after_commit_hash,
            )
            log.debug(
                f"Captured diff between {context.before_commit_hash[:8]} "
                f"and {after_commit_hash[:8]}"
            )

        context.advance(ExecutionPhase.PERSISTING)
        record = self.sessions.create_execution_diff(
            CreateExecutionDiffData.from_diff(
                session_id,
                context.execution_sequence,
                execution_diff,
                prompt_marker_id=context.prompt_marker_id,
            )
        )
        context.advance(ExecutionPhase.COMPLETED)

        if record.stats_files_changed > 0:
            log.info(
                f"Created execution diff {record.id}: {record.stats_files_changed} files, "
                f"+{record.stats_additions} -{record.stats_deletions}"
            )
        else:
            log.info(f"Created execution diff {record.id} with no changes")
        return record

    def _report(self, session_id: str, message: CommitStatusMessage | None) -> None:
        if message is None:
            return
        logger.debug(f"Session {session_id} commit status: {message.subtype.value}")
        self.sessions.add_session_output(
            session_id,
            SessionOutput(type="json", data=message.to_payload()),
        )

    def cancel_execution(self, session_id: str) -> None:
        """Stop tracking without capturing a diff.

        Commits already made are kept. No-op if the session is not tracked.
        """
        context = self.registry.pop(session_id)
        if context is None:
            return

        logger.info(f"Cancelling execution tracking for session {session_id}")
        if context.phase not in TERMINAL_PHASES:
            context.advance(ExecutionPhase.CANCELLED)
        self.notifier.emit(
            ExecutionEvent(
                type=ExecutionEventType.CANCELLED,
                session_id=session_id,
                execution_sequence=context.execution_sequence,
            )
        )

    def is_tracking(self, session_id: str) -> bool:
        return session_id in self.registry

    def get_execution_context(self, session_id: str) -> ExecutionContext | None:
        return self.registry.get(session_id)

    async def get_execution_diffs(self, session_id: str) -> list[ExecutionDiffRecord]:
        return self.sessions.get_execution_diffs(session_id)

    async def get_combined_diff(
        self,
        session_id: str,
        execution_ids: list[int] | None = None,
    ) -> GitDiffResult:
        """Combine stored diffs of a session.

        Args:
            session_id: Session identifier
            execution_ids: Diff record ids to include (all when empty)

        Returns:
            Combined GitDiffResult
        """
        records = self.sessions.get_execution_diffs(session_id)
        if execution_ids:
            wanted = set(execution_ids)
            records = [r for r in records if r.id in wanted]

        diffs = [r.to_diff_result() for r in records if r.git_diff]
        return self.diff_capture.combine_diffs(diffs)
