"""System messages describing commit outcomes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .manager import CommitResult
from .modes import CommitMode


class CommitStatus(str, Enum):
    """Subtypes of commit status messages."""

    ERROR = "autocommit_error"
    SUCCESS = "autocommit_success"
    MODE = "autocommit_mode"
    TIMEOUT = "autocommit_timeout"
    AGENT_SUCCESS = "autocommit_claude_success"


MESSAGES = {
    CommitStatus.ERROR: (
        "Failed to create commit during agent execution. Changes remain uncommitted. "
        "You may need to fix the issues and commit manually."
    ),
    CommitStatus.SUCCESS: (
        "Checkpoint commit created successfully. "
        "Changes have been automatically committed during execution."
    ),
    CommitStatus.MODE: "Structured mode active. The agent will handle commits when appropriate.",
    CommitStatus.TIMEOUT: (
        "The agent did not create a commit within the expected timeframe. "
        "It may have chosen not to commit, or may need more time."
    ),
    CommitStatus.AGENT_SUCCESS: (
        "The agent successfully created a commit according to your structured mode settings."
    ),
}


class CommitStatusMessage(BaseModel):
    """Payload written to the session output stream."""

    type: str = Field(default="system")
    subtype: CommitStatus
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    mode: CommitMode
    commit_hash: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)
    message: str

    @classmethod
    def create(
        cls,
        subtype: CommitStatus,
        mode: CommitMode,
        commit_hash: str | None = None,
        error: str | None = None,
    ) -> "CommitStatusMessage":
        return cls(
            subtype=subtype,
            mode=mode,
            commit_hash=commit_hash,
            error=error,
            message=MESSAGES[subtype],
        )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


def post_commit_message(mode: CommitMode, result: CommitResult) -> CommitStatusMessage | None:
    """Message for the commit step, or None when there is nothing to report.

    Disabled mode reports only failures. A checkpoint that found nothing to
    commit is reported as a success without a commit hash.
    """
    if not result.success:
        if not result.error:
            return None
        return CommitStatusMessage.create(CommitStatus.ERROR, mode, error=result.error)

    if mode == CommitMode.CHECKPOINT:
        return CommitStatusMessage.create(
            CommitStatus.SUCCESS, mode, commit_hash=result.commit_hash
        )
    if mode == CommitMode.STRUCTURED:
        return CommitStatusMessage.create(CommitStatus.MODE, mode)
    return None


def structured_wait_message(result: CommitResult) -> CommitStatusMessage | None:
    """Message for the structured commit wait."""
    if not result.success:
        return CommitStatusMessage.create(
            CommitStatus.TIMEOUT,
            CommitMode.STRUCTURED,
            error=result.error or "Timeout waiting for commit",
        )
    if result.commit_hash:
        return CommitStatusMessage.create(
            CommitStatus.AGENT_SUCCESS,
            CommitMode.STRUCTURED,
            commit_hash=result.commit_hash,
        )
    return None
