"""Session and execution diff records."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..commit.modes import CommitMode
from ..diff.models import DiffStats, GitDiffResult


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionRecord(BaseModel):
    """Session fields used by execution tracking."""

    session_id: str
    worktree_path: str
    commit_mode: Optional[CommitMode] = Field(default=None, description="Explicit commit policy")
    commit_mode_settings: Optional[str] = Field(
        default=None, description="Serialized CommitModeSettings (JSON)"
    )
    auto_commit: Optional[bool] = Field(default=None, description="Legacy commit flag")
    last_execution_sequence: int = Field(default=0)
    created_at: str = Field(default_factory=_now)


class SessionOutput(BaseModel):
    """Entry in a session's output stream."""

    type: str = Field(default="json")
    data: dict[str, Any]
    timestamp: str = Field(default_factory=_now)


class CreateExecutionDiffData(BaseModel):
    """Fields of an execution diff record before it is stored."""

    session_id: str
    prompt_marker_id: Optional[int] = Field(default=None)
    execution_sequence: int
    git_diff: str = Field(default="")
    files_changed: list[str] = Field(default_factory=list)
    stats_additions: int = Field(default=0)
    stats_deletions: int = Field(default=0)
    stats_files_changed: int = Field(default=0)
    before_commit_hash: Optional[str] = Field(default=None)
    after_commit_hash: Optional[str] = Field(default=None)

    @classmethod
    def from_diff(
        cls,
        session_id: str,
        execution_sequence: int,
        diff: GitDiffResult,
        prompt_marker_id: int | None = None,
    ) -> "CreateExecutionDiffData":
        return cls(
            session_id=session_id,
            prompt_marker_id=prompt_marker_id,
            execution_sequence=execution_sequence,
            git_diff=diff.diff,
            files_changed=list(diff.changed_files),
            stats_additions=diff.stats.additions,
            stats_deletions=diff.stats.deletions,
            stats_files_changed=diff.stats.files_changed,
            before_commit_hash=diff.before_hash,
            after_commit_hash=diff.after_hash,
        )


class ExecutionDiffRecord(CreateExecutionDiffData):
    """Stored execution diff."""

    id: int
    created_at: str = Field(default_factory=_now)

    @property
    def stats(self) -> DiffStats:
        return DiffStats(
            additions=self.stats_additions,
            deletions=self.stats_deletions,
            files_changed=self.stats_files_changed,
        )

    def to_diff_result(self) -> GitDiffResult:
        return GitDiffResult(
            diff=self.git_diff,
            stats=self.stats,
            changed_files=self.files_changed,
            before_hash=self.before_commit_hash,
            after_hash=self.after_commit_hash,
        )


class SessionStoreState(BaseModel):
    """On-disk layout of the JSON session store."""

    sessions: dict[str, SessionRecord] = Field(default_factory=dict)
    execution_diffs: list[ExecutionDiffRecord] = Field(default_factory=list)
    outputs: dict[str, list[SessionOutput]] = Field(default_factory=dict)
    next_diff_id: int = Field(default=1)
    updated_at: str = Field(default_factory=_now)
