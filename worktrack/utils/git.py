"""Git operations wrapper."""

import logging
from pathlib import Path

from .subprocess import SubprocessError, SubprocessManager

logger = logging.getLogger(__name__)


class GitError(Exception):
    """Git operation error."""

    pass


class GitOps:
    """Git operations for a single worktree."""

    def __init__(self, repo_root: Path, timeout_sec: float = 30):
        """Initialize Git operations.

        Args:
            repo_root: Worktree root directory
            timeout_sec: Default timeout for operations
        """
        self.repo_root = Path(repo_root)
        self.timeout_sec = timeout_sec
        self.manager = SubprocessManager(timeout_sec=timeout_sec)

    async def run_git(self, args: list[str], check: bool = True) -> dict:
        """Run git command.

        Args:
            args: Git arguments
            check: Whether to check exit code

        Returns:
            Result dict

        Raises:
            GitError: On failure
        """
        # Paths are printed verbatim instead of C-quoted for non-ASCII names
        command = ["git", "-c", "core.quotePath=false"] + args
        try:
            result = await self.manager.run(command, cwd=self.repo_root)
        except SubprocessError as e:
            raise GitError(f"Git subprocess error: {e}")

        if result["timed_out"]:
            raise GitError(f"Git command timed out after {self.timeout_sec}s: {' '.join(args)}")

        if check and not result["success"]:
            details = (result["stderr"] or result["output"]).strip()
            raise GitError(f"Git command failed: {' '.join(args)}\n{details}")

        return result

    async def get_head_hash(self) -> str:
        """Get the commit hash HEAD points to.

        Returns:
            Full commit hash

        Raises:
            GitError: If the path is not a repository or has no commits
        """
        result = await self.run_git(["rev-parse", "HEAD"])
        commit_hash = result["output"].strip()
        if not commit_hash:
            raise GitError(f"Could not resolve HEAD in {self.repo_root}")
        return commit_hash

    async def status_porcelain(self) -> list[str]:
        """Get `git status --porcelain` entries.

        Returns:
            Non-empty status lines
        """
        result = await self.run_git(["status", "--porcelain"])
        return [line for line in result["output"].split("\n") if line.strip()]

    async def has_changes(self) -> bool:
        """Check whether the worktree has staged, unstaged or untracked changes."""
        return bool(await self.status_porcelain())

    async def add_all(self) -> None:
        """Stage every change, including deletions and untracked files."""
        await self.run_git(["add", "-A"])

    async def commit(self, message: str, allow_empty: bool = False) -> str:
        """Commit staged changes.

        Args:
            message: Commit message
            allow_empty: Allow empty commit

        Returns:
            Commit hash
        """
        args = ["commit", "-m", message]
        if allow_empty:
            args.append("--allow-empty")

        await self.run_git(args)

        commit_hash = await self.get_head_hash()
        logger.info(f"Committed: {commit_hash[:8]} - {message.split(chr(10))[0]}")

        return commit_hash

    async def diff(self, *revisions: str) -> str:
        """Get patch text.

        Args:
            revisions: Zero, one (against the working tree) or two commits

        Returns:
            Diff output
        """
        result = await self.run_git(["diff", "--no-color", "--no-renames", *revisions])
        return result["output"]

    async def numstat(self, *revisions: str) -> list[tuple[int, int, str]]:
        """Get per-file line counts.

        Binary files report `-` for both counts and are counted as zero.

        Returns:
            List of (additions, deletions, path) tuples in git order
        """
        result = await self.run_git(["diff", "--numstat", "-z", "--no-renames", *revisions])
        return parse_numstat(result["output"])

    async def list_untracked_files(self) -> list[str]:
        """List untracked files that are not ignored."""
        result = await self.run_git(["ls-files", "-z", "--others", "--exclude-standard"])
        return [f for f in result["output"].split("\0") if f]

    async def diff_untracked_file(self, path: str) -> str:
        """Render an untracked file as a new-file patch.

        `git diff --no-index` exits with 1 when the inputs differ, so only
        stderr output or other exit codes count as failure.
        """
        result = await self.run_git(
            ["diff", "--no-color", "--no-index", "--", "/dev/null", path],
            check=False,
        )
        _check_no_index(result, path)
        return result["output"]

    async def numstat_untracked_file(self, path: str) -> tuple[int, int, str]:
        """Get line counts for an untracked file as if it were added."""
        result = await self.run_git(
            ["diff", "--numstat", "-z", "--no-index", "--", "/dev/null", path],
            check=False,
        )
        _check_no_index(result, path)
        entries = parse_numstat(result["output"])
        if not entries:
            return (0, 0, path)
        additions, deletions, _ = entries[0]
        return (additions, deletions, path)


def _check_no_index(result: dict, path: str) -> None:
    stderr = result["stderr"].strip()
    if result["exit_code"] not in (0, 1) or (stderr and not result["output"]):
        raise GitError(f"Failed to diff untracked file {path}: {stderr}")


def parse_numstat(output: str) -> list[tuple[int, int, str]]:
    """Parse `git diff --numstat` output.

    Records are NUL-terminated when git ran with `-z`, newline-terminated
    otherwise. Paths are kept exactly as git reports them.

    Args:
        output: Raw numstat output, one `adds<TAB>dels<TAB>path` per record

    Returns:
        List of (additions, deletions, path) tuples
    """
    separator = "\0" if "\0" in output else "\n"
    entries = []
    for line in output.split(separator):
        line = line.strip("\n")
        if not line.strip():
            continue
        parts = line.split("\t", 2)
        if len(parts) != 3:
            continue
        adds = int(parts[0]) if parts[0] != "-" else 0
        dels = int(parts[1]) if parts[1] != "-" else 0
        entries.append((adds, dels, parts[2]))
    return entries
