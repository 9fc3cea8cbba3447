"""End-to-end execution tracking against real git repositories."""

import json

import pytest

from worktrack.commit.manager import CommitManager
from worktrack.commit.modes import CommitMode
from worktrack.diff.capture import GitDiffCapture
from worktrack.sessions.store import JsonSessionStore
from worktrack.tracking.tracker import ExecutionTracker


def _tracker(tmp_path, clock=None):
    store = JsonSessionStore(tmp_path / "store" / "sessions.json")
    tracker = ExecutionTracker(
        store,
        GitDiffCapture(),
        CommitManager(poll_interval_ms=100, clock=clock),
        structured_timeout_ms=500,
    )
    return store, tracker


def _subtypes(store, session_id):
    return [o.data["subtype"] for o in store.get_session_outputs(session_id)]


@pytest.mark.asyncio
async def test_checkpoint_execution(tmp_path, git_repo, run_git):
    """Test a checkpoint run commits and records the committed range."""
    store, tracker = _tracker(tmp_path)
    store.create_session("s1", git_repo, commit_mode=CommitMode.CHECKPOINT)
    before = run_git(git_repo, "rev-parse", "HEAD").strip()

    await tracker.start_execution("s1", git_repo, prompt="Update docs")
    (git_repo / "README.md").write_text("hello\nworld\n")
    (git_repo / "notes.txt").write_text("one\ntwo\n")
    record = await tracker.end_execution("s1")

    after = run_git(git_repo, "rev-parse", "HEAD").strip()
    assert after != before
    assert run_git(git_repo, "log", "-1", "--format=%s").strip() == "checkpoint: Update docs"
    assert record.stats_files_changed == 2
    assert record.stats_additions == 3
    assert sorted(record.files_changed) == ["README.md", "notes.txt"]
    assert (record.before_commit_hash, record.after_commit_hash) == (before, after)
    assert _subtypes(store, "s1") == ["autocommit_success"]
    assert tracker.is_tracking("s1") is False


@pytest.mark.asyncio
async def test_disabled_execution_keeps_changes_uncommitted(tmp_path, git_repo, run_git):
    """Test disabled mode records the working tree diff and makes no commit."""
    store, tracker = _tracker(tmp_path)
    store.create_session("s1", git_repo, commit_mode=CommitMode.DISABLED)
    before = run_git(git_repo, "rev-parse", "HEAD").strip()

    await tracker.start_execution("s1", git_repo)
    (git_repo / "app.py").write_text("print('a')\n")
    record = await tracker.end_execution("s1")

    assert run_git(git_repo, "rev-parse", "HEAD").strip() == before
    assert record.files_changed == ["app.py"]
    assert record.stats_deletions == 1
    assert record.before_commit_hash == before
    assert record.after_commit_hash is None
    assert "-print('b')" in record.git_diff
    assert _subtypes(store, "s1") == []


@pytest.mark.asyncio
async def test_unchanged_execution_records_empty_diff(tmp_path, git_repo):
    """Test an execution without changes still produces one record."""
    store, tracker = _tracker(tmp_path)
    store.create_session("s1", git_repo)

    await tracker.start_execution("s1", git_repo)
    record = await tracker.end_execution("s1")

    assert record.stats_files_changed == 0
    assert record.git_diff == ""
    assert len(store.get_execution_diffs("s1")) == 1
    outputs = store.get_session_outputs("s1")
    assert [o.data["subtype"] for o in outputs] == ["autocommit_success"]
    assert "commit_hash" not in outputs[0].data


@pytest.mark.asyncio
async def test_structured_execution_with_agent_commit(tmp_path, git_repo, run_git):
    """Test structured mode detects a commit made by the agent."""
    store, tracker = _tracker(tmp_path)
    store.create_session("s1", git_repo, commit_mode=CommitMode.STRUCTURED)

    await tracker.start_execution("s1", git_repo)
    (git_repo / "feature.py").write_text("def f():\n    return 1\n")
    run_git(git_repo, "add", "feature.py")
    run_git(git_repo, "commit", "-q", "-m", "feat: add f")
    record = await tracker.end_execution("s1")

    head = run_git(git_repo, "rev-parse", "HEAD").strip()
    outputs = store.get_session_outputs("s1")
    assert [o.data["subtype"] for o in outputs] == ["autocommit_mode", "autocommit_claude_success"]
    assert outputs[1].data["commit_hash"] == head
    assert record.after_commit_hash == head
    assert record.files_changed == ["feature.py"]


@pytest.mark.asyncio
async def test_structured_execution_without_commit(tmp_path, git_repo, fake_clock):
    """Test structured mode reports a timeout and keeps the working tree diff."""
    store, tracker = _tracker(tmp_path, clock=fake_clock)
    store.create_session("s1", git_repo, commit_mode=CommitMode.STRUCTURED)

    await tracker.start_execution("s1", git_repo)
    (git_repo / "draft.txt").write_text("draft\n")
    record = await tracker.end_execution("s1")

    assert _subtypes(store, "s1") == ["autocommit_mode", "autocommit_timeout"]
    assert sum(fake_clock.sleeps) == pytest.approx(0.5)
    assert record.files_changed == ["draft.txt"]
    assert record.after_commit_hash is None


@pytest.mark.asyncio
async def test_settings_json_overrides_prefix(tmp_path, git_repo, run_git):
    """Test checkpoint prefix from serialized session settings."""
    store, tracker = _tracker(tmp_path)
    store.create_session(
        "s1",
        git_repo,
        commit_mode=CommitMode.CHECKPOINT,
        commit_mode_settings=json.dumps({"checkpointPrefix": "wip: "}),
    )

    await tracker.start_execution("s1", git_repo, prompt="Tidy")
    (git_repo / "README.md").write_text("tidy\n")
    await tracker.end_execution("s1")

    assert run_git(git_repo, "log", "-1", "--format=%s").strip() == "wip: Tidy"


@pytest.mark.asyncio
async def test_consecutive_executions_combine(tmp_path, git_repo):
    """Test two checkpoint runs combine into one aggregate diff."""
    store, tracker = _tracker(tmp_path)
    store.create_session("s1", git_repo)

    await tracker.start_execution("s1", git_repo, prompt="first")
    (git_repo / "a.txt").write_text("a\n")
    first = await tracker.end_execution("s1")

    await tracker.start_execution("s1", git_repo, prompt="second")
    (git_repo / "b.txt").write_text("b\nb\n")
    second = await tracker.end_execution("s1")

    combined = await tracker.get_combined_diff("s1")
    assert (first.execution_sequence, second.execution_sequence) == (1, 2)
    assert combined.changed_files == ("a.txt", "b.txt")
    assert combined.stats.additions == 3
    assert combined.before_hash == first.before_commit_hash
    assert combined.after_hash == second.after_commit_hash
