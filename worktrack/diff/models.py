"""Diff result models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DiffStats(BaseModel):
    """Aggregate line and file counts for a diff."""

    model_config = ConfigDict(frozen=True)

    additions: int = Field(default=0, description="Lines added")
    deletions: int = Field(default=0, description="Lines removed")
    files_changed: int = Field(default=0, description="Files touched")

    def __add__(self, other: "DiffStats") -> "DiffStats":
        return DiffStats(
            additions=self.additions + other.additions,
            deletions=self.deletions + other.deletions,
            files_changed=self.files_changed + other.files_changed,
        )


class GitDiffResult(BaseModel):
    """Repository delta between two points.

    `after_hash` is None when the diff describes uncommitted working-tree
    changes on top of `before_hash`.
    """

    model_config = ConfigDict(frozen=True)

    diff: str = Field(default="", description="Unified patch text")
    stats: DiffStats = Field(default_factory=DiffStats)
    changed_files: tuple[str, ...] = Field(default=(), description="Changed paths in git order")
    before_hash: Optional[str] = Field(default=None)
    after_hash: Optional[str] = Field(default=None)
