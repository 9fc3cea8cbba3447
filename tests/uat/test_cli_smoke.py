from __future__ import annotations

import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from worktrack.main import cli

CONFIG = str(Path(".worktrack") / "config.yml")


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers the CLI installs on the root logger."""
    root = logging.getLogger()
    original_level = root.level
    original_handlers = root.handlers.copy()

    yield

    for handler in root.handlers:
        if handler not in original_handlers:
            handler.close()
    root.setLevel(original_level)
    root.handlers[:] = original_handlers


def _init(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--config", CONFIG, "init"])
    assert result.exit_code == 0, result.output


def test_cli_init_creates_config(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        _init(runner)
        assert Path(CONFIG).exists()

        again = runner.invoke(cli, ["--config", CONFIG, "init"])
        assert again.exit_code == 1
        assert "already exists" in again.output


def test_cli_messages_unknown_session(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        _init(runner)

        result = runner.invoke(cli, ["--config", CONFIG, "messages", "nope"])
        assert result.exit_code == 0
        assert "No messages for session nope" in result.output

        result = runner.invoke(cli, ["--config", CONFIG, "diffs", "nope"])
        assert result.exit_code == 0
        assert "No execution diffs for session nope" in result.output


def test_cli_run_requires_command(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        _init(runner)

        result = runner.invoke(cli, ["--config", CONFIG, "run", "s1"])
        assert result.exit_code != 0
        assert "COMMAND" in result.output


def test_cli_run_records_checkpoint(tmp_path: Path, git_repo: Path, run_git) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        _init(runner)

        result = runner.invoke(
            cli,
            [
                "--config",
                CONFIG,
                "run",
                "--worktree",
                str(git_repo),
                "--prompt",
                "Write a file",
                "s1",
                "--",
                "sh",
                "-c",
                "cat > prompt.txt",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Running execution #1" in result.output
        assert "autocommit_success" in result.output
        assert "✓ Recorded diff 1: 1 files, +1 -0" in result.output
        assert run_git(git_repo, "log", "-1", "--format=%s").strip() == "checkpoint: Write a file"
        assert (git_repo / "prompt.txt").read_text().strip() == "Write a file"

        diffs = runner.invoke(cli, ["--config", CONFIG, "diffs", "s1"])
        assert "#1 diff 1: 1 files, +1 -0" in diffs.output

        messages = runner.invoke(cli, ["--config", CONFIG, "messages", "s1"])
        assert "[autocommit_success]" in messages.output

        combined = runner.invoke(cli, ["--config", CONFIG, "combined", "s1", "--patch"])
        assert combined.exit_code == 0, combined.output
        assert "prompt.txt" in combined.output
        assert "+Write a file" in combined.output


def test_cli_failed_agent_not_recorded(tmp_path: Path, git_repo: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        _init(runner)

        result = runner.invoke(
            cli,
            [
                "--config",
                CONFIG,
                "run",
                "--worktree",
                str(git_repo),
                "--commit-mode",
                "disabled",
                "s1",
                "--",
                "sh",
                "-c",
                "exit 3",
            ],
        )
        assert result.exit_code == 1
        assert "exited with 3" in result.output

        diffs = runner.invoke(cli, ["--config", CONFIG, "diffs", "s1"])
        assert "No execution diffs for session s1" in diffs.output
