"""Post-execution commit handling."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from ..utils.git import GitError, GitOps
from ..utils.polling import Clock, poll_until
from .modes import CommitMode, CommitModeSettings

logger = logging.getLogger(__name__)

DEFAULT_STRUCTURED_TIMEOUT_MS = 5000
DEFAULT_POLL_INTERVAL_MS = 250
MAX_SUBJECT_LENGTH = 72


class CommitResult(BaseModel):
    """Outcome of a commit step."""

    success: bool
    commit_hash: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)


class CommitManager:
    """Applies a session's commit policy to its worktree."""

    def __init__(
        self,
        git_timeout_sec: float = 30,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        clock: Clock | None = None,
        git_factory: Callable[[Path], GitOps] | None = None,
    ):
        """Initialize commit manager.

        Args:
            git_timeout_sec: Timeout for each git call
            poll_interval_ms: Delay between structured commit checks
            clock: Time source for the structured commit wait
            git_factory: Builds a GitOps for a worktree path
        """
        self.poll_interval_ms = poll_interval_ms
        self.clock = clock
        self._git_factory = git_factory or (lambda path: GitOps(path, timeout_sec=git_timeout_sec))

    def _git(self, path: Path) -> GitOps:
        return self._git_factory(Path(path))

    async def handle_post_prompt_commit(
        self,
        session_id: str,
        worktree_path: Path,
        settings: CommitModeSettings,
        prompt: str | None = None,
        execution_sequence: int | None = None,
    ) -> CommitResult:
        """Run the commit step for a finished execution.

        Args:
            session_id: Session identifier
            worktree_path: Session worktree
            settings: Effective commit settings
            prompt: Prompt that drove the execution
            execution_sequence: Execution ordinal within the session

        Returns:
            CommitResult; git failures are reported, not raised
        """
        if settings.mode == CommitMode.DISABLED:
            logger.debug(f"Commit mode disabled for session {session_id}")
            return CommitResult(success=True)

        if settings.mode == CommitMode.STRUCTURED:
            logger.debug(f"Structured mode for session {session_id}, agent commits itself")
            return CommitResult(success=True)

        message = build_checkpoint_message(settings.checkpoint_prefix, prompt, execution_sequence)
        return await self._create_checkpoint(session_id, worktree_path, message)

    async def _create_checkpoint(
        self, session_id: str, worktree_path: Path, message: str
    ) -> CommitResult:
        git = self._git(worktree_path)
        try:
            if not await git.has_changes():
                logger.info(f"No changes to checkpoint for session {session_id}")
                return CommitResult(success=True)

            await git.add_all()
            commit_hash = await git.commit(message)
        except GitError as e:
            if "nothing to commit" in str(e):
                logger.info(f"Nothing to commit for session {session_id}")
                return CommitResult(success=True)
            logger.warning(f"Checkpoint commit failed for session {session_id}: {e}")
            return CommitResult(success=False, error=str(e))

        return CommitResult(success=True, commit_hash=commit_hash)

    async def wait_for_structured_commit(
        self,
        session_id: str,
        worktree_path: Path,
        timeout_ms: int = DEFAULT_STRUCTURED_TIMEOUT_MS,
        baseline_hash: str | None = None,
    ) -> CommitResult:
        """Wait for the agent to create a commit.

        Args:
            session_id: Session identifier
            worktree_path: Session worktree
            timeout_ms: Upper bound on the wait
            baseline_hash: HEAD before the agent ran; read now if omitted

        Returns:
            Success with the new HEAD, or failure with a timeout error
        """
        git = self._git(worktree_path)
        try:
            baseline = baseline_hash or await git.get_head_hash()
        except GitError as e:
            return CommitResult(success=False, error=str(e))

        async def new_head() -> str | None:
            try:
                head = await git.get_head_hash()
            except GitError as e:
                logger.debug(f"HEAD lookup failed while waiting for commit: {e}")
                return None
            return head if head != baseline else None

        commit_hash = await poll_until(
            new_head,
            timeout_sec=timeout_ms / 1000,
            interval_sec=self.poll_interval_ms / 1000,
            clock=self.clock,
        )

        if commit_hash is None:
            return CommitResult(
                success=False,
                error=f"No commit detected within {timeout_ms}ms",
            )

        logger.info(f"Detected agent commit {commit_hash[:8]} for session {session_id}")
        return CommitResult(success=True, commit_hash=commit_hash)


def build_checkpoint_message(
    prefix: str,
    prompt: str | None,
    execution_sequence: int | None = None,
) -> str:
    """Build a checkpoint commit message.

    The subject is the prefix plus the first prompt line; the full prompt
    goes into the body.
    """
    lines = [line.strip() for line in (prompt or "").splitlines() if line.strip()]
    if lines:
        summary = lines[0]
        if len(summary) > MAX_SUBJECT_LENGTH:
            summary = summary[: MAX_SUBJECT_LENGTH - 3] + "..."
    else:
        summary = f"execution {execution_sequence}" if execution_sequence is not None else "execution"

    subject = f"{prefix}{summary}"
    if not lines:
        return subject

    body = "\n".join(lines)
    if execution_sequence is not None:
        body = f"Execution #{execution_sequence}\n\n{body}"
    return f"{subject}\n\n{body}"
