"""Unit tests for diff capture and combination."""

import pytest

from worktrack.diff.capture import GitDiffCapture, combine_diffs
from worktrack.diff.models import DiffStats, GitDiffResult


def _diff(text, additions, deletions, files, before="a", after="b"):
    return GitDiffResult(
        diff=text,
        stats=DiffStats(additions=additions, deletions=deletions, files_changed=len(files)),
        changed_files=files,
        before_hash=before,
        after_hash=after,
    )


@pytest.mark.asyncio
async def test_working_directory_diff_includes_untracked(git_repo, run_git):
    """Test working tree diff covers modified and untracked files."""
    head = run_git(git_repo, "rev-parse", "HEAD").strip()
    (git_repo / "README.md").write_text("hello\nworld\n")
    (git_repo / "new.txt").write_text("one\ntwo\n")

    result = await GitDiffCapture().capture_working_directory_diff(git_repo)

    assert result.changed_files == ("README.md", "new.txt")
    assert result.stats == DiffStats(additions=3, deletions=0, files_changed=2)
    assert result.before_hash == head
    assert result.after_hash is None
    assert "+world" in result.diff
    assert "+two" in result.diff


@pytest.mark.asyncio
async def test_working_directory_diff_clean_tree(git_repo):
    """Test a clean tree yields an empty zero-stat diff."""
    result = await GitDiffCapture().capture_working_directory_diff(git_repo)

    assert result.diff == ""
    assert result.stats == DiffStats()
    assert result.changed_files == ()


@pytest.mark.asyncio
async def test_working_directory_diff_non_ascii_untracked(git_repo):
    """Test untracked files with non-ASCII names keep their path and patch."""
    (git_repo / "café.txt").write_text("un\ndeux\n")

    result = await GitDiffCapture().capture_working_directory_diff(git_repo)

    assert result.changed_files == ("café.txt",)
    assert result.stats == DiffStats(additions=2, deletions=0, files_changed=1)
    assert "café.txt" in result.diff
    assert "+deux" in result.diff
    assert combine_diffs([result]).changed_files == ("café.txt",)


@pytest.mark.asyncio
async def test_commit_diff_non_ascii_path(git_repo, run_git):
    """Test committed files with non-ASCII names are reported verbatim."""
    before = run_git(git_repo, "rev-parse", "HEAD").strip()
    (git_repo / "naïve.txt").write_text("x\n")
    run_git(git_repo, "add", "-A")
    run_git(git_repo, "commit", "-q", "-m", "add naive")
    after = run_git(git_repo, "rev-parse", "HEAD").strip()

    result = await GitDiffCapture().capture_commit_diff(git_repo, before, after)

    assert result.changed_files == ("naïve.txt",)
    assert result.stats.additions == 1
    assert "+++ b/naïve.txt" in result.diff


@pytest.mark.asyncio
async def test_commit_diff(git_repo, run_git):
    """Test diff between two commits."""
    before = run_git(git_repo, "rev-parse", "HEAD").strip()
    (git_repo / "app.py").write_text("print('a')\nprint('c')\n")
    (git_repo / "README.md").unlink()
    run_git(git_repo, "add", "-A")
    run_git(git_repo, "commit", "-q", "-m", "change")
    after = run_git(git_repo, "rev-parse", "HEAD").strip()

    capture = GitDiffCapture()
    result = await capture.capture_commit_diff(git_repo, before, after)

    assert set(result.changed_files) == {"README.md", "app.py"}
    assert result.stats.additions == 1
    assert result.stats.deletions == 2
    assert result.stats.files_changed == 2
    assert (result.before_hash, result.after_hash) == (before, after)
    assert await capture.get_current_commit_hash(git_repo) == after


def test_combine_diffs_sums_stats_and_unions_files():
    """Test stats are additive and files are unioned in first-seen order."""
    d1 = _diff("patch-1", 3, 1, ["a.py", "b.py"], before="h0", after="h1")
    d2 = _diff("patch-2", 5, 2, ["b.py", "c.py"], before="h1", after="h2")

    combined = combine_diffs([d1, d2])

    assert combined.stats.additions == d1.stats.additions + d2.stats.additions
    assert combined.stats.deletions == 3
    assert combined.stats.files_changed == 4
    assert combined.changed_files == ("a.py", "b.py", "c.py")
    assert combined.diff == "patch-1\npatch-2"
    assert (combined.before_hash, combined.after_hash) == ("h0", "h2")


def test_combine_diffs_skips_empty_entries():
    """Test entries without diff text are excluded."""
    empty = _diff("", 0, 0, ["ignored.py"], before="x", after="y")
    real = _diff("patch", 1, 0, ["kept.py"], before="h0", after="h1")

    combined = combine_diffs([empty, real, empty])

    assert combined.changed_files == ("kept.py",)
    assert combined.before_hash == "h0"
    assert combined.diff == "patch"


def test_combine_diffs_empty_input():
    """Test combining nothing yields an empty result."""
    assert combine_diffs([]) == GitDiffResult()


def test_combine_diffs_partial_and_full_agree():
    """Test nested combination matches a flat one."""
    d1 = _diff("p1", 1, 0, ["a"])
    d2 = _diff("p2", 2, 1, ["b", "a"])
    d3 = _diff("p3", 4, 4, ["c"])

    flat = combine_diffs([d1, d2, d3])
    nested = combine_diffs([combine_diffs([d1, d2]), d3])

    assert nested == flat
