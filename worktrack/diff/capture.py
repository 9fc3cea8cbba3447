"""Diff capture for agent worktrees."""

import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Protocol

from ..utils.git import GitOps
from .models import DiffStats, GitDiffResult

logger = logging.getLogger(__name__)


class DiffCapture(Protocol):
    """Repository access needed to track an execution."""

    async def get_current_commit_hash(self, path: Path) -> str: ...

    async def capture_working_directory_diff(self, path: Path) -> GitDiffResult: ...

    async def capture_commit_diff(
        self, path: Path, before_hash: str, after_hash: str
    ) -> GitDiffResult: ...

    def combine_diffs(self, diffs: Iterable[GitDiffResult]) -> GitDiffResult: ...


class GitDiffCapture:
    """Captures diffs by running git inside a worktree."""

    def __init__(
        self,
        timeout_sec: float = 30,
        git_factory: Callable[[Path], GitOps] | None = None,
    ):
        """Initialize diff capture.

        Args:
            timeout_sec: Timeout for each git call
            git_factory: Builds a GitOps for a worktree path
        """
        self.timeout_sec = timeout_sec
        self._git_factory = git_factory or (lambda path: GitOps(path, timeout_sec=timeout_sec))

    def _git(self, path: Path) -> GitOps:
        return self._git_factory(Path(path))

    async def get_current_commit_hash(self, path: Path) -> str:
        """Get the HEAD commit of a worktree.

        Raises:
            GitError: If the path is not a repository or has no commits
        """
        return await self._git(path).get_head_hash()

    async def capture_working_directory_diff(self, path: Path) -> GitDiffResult:
        """Describe uncommitted changes (tracked and untracked) against HEAD.

        Args:
            path: Worktree path

        Returns:
            GitDiffResult with after_hash None
        """
        git = self._git(path)
        head = await git.get_head_hash()

        patches = [await git.diff("HEAD")]
        entries = await git.numstat("HEAD")

        for untracked in await git.list_untracked_files():
            patches.append(await git.diff_untracked_file(untracked))
            entries.append(await git.numstat_untracked_file(untracked))

        result = _build_result(patches, entries, before_hash=head, after_hash=None)
        logger.debug(
            f"Working tree diff in {path}: {result.stats.files_changed} files, "
            f"+{result.stats.additions} -{result.stats.deletions}"
        )
        return result

    async def capture_commit_diff(
        self, path: Path, before_hash: str, after_hash: str
    ) -> GitDiffResult:
        """Describe the changes between two commits.

        Args:
            path: Worktree path
            before_hash: Starting commit
            after_hash: Ending commit

        Returns:
            GitDiffResult for the range
        """
        git = self._git(path)
        patch = await git.diff(before_hash, after_hash)
        entries = await git.numstat(before_hash, after_hash)

        result = _build_result([patch], entries, before_hash=before_hash, after_hash=after_hash)
        logger.debug(
            f"Commit diff {before_hash[:8]}..{after_hash[:8]}: {result.stats.files_changed} files"
        )
        return result

    def combine_diffs(self, diffs: Iterable[GitDiffResult]) -> GitDiffResult:
        return combine_diffs(diffs)


def _build_result(
    patches: list[str],
    entries: list[tuple[int, int, str]],
    before_hash: str | None,
    after_hash: str | None,
) -> GitDiffResult:
    changed_files: list[str] = []
    additions = deletions = 0
    for adds, dels, file_path in entries:
        additions += adds
        deletions += dels
        if file_path not in changed_files:
            changed_files.append(file_path)

    return GitDiffResult(
        diff="".join(patches),
        stats=DiffStats(
            additions=additions,
            deletions=deletions,
            files_changed=len(changed_files),
        ),
        changed_files=changed_files,
        before_hash=before_hash,
        after_hash=after_hash,
    )


def combine_diffs(diffs: Iterable[GitDiffResult]) -> GitDiffResult:
    """Merge diffs into one aggregate.

    Entries with empty diff text are dropped. Stats are summed field-wise,
    changed files are unioned in first-seen order, and patch text is joined
    in input order. The result spans from the first entry's before_hash to
    the last entry's after_hash.

    Args:
        diffs: Diff results in execution order

    Returns:
        Combined GitDiffResult (empty when nothing remains)
    """
    included = [d for d in diffs if d.diff]
    if not included:
        return GitDiffResult()

    stats = DiffStats()
    changed_files: list[str] = []
    seen: set[str] = set()
    for entry in included:
        stats = stats + entry.stats
        for file_path in entry.changed_files:
            if file_path not in seen:
                seen.add(file_path)
                changed_files.append(file_path)

    return GitDiffResult(
        diff="\n".join(d.diff for d in included),
        stats=stats,
        changed_files=changed_files,
        before_hash=included[0].before_hash,
        after_hash=included[-1].after_hash,
    )
