"""Worktrack CLI entrypoint."""

import asyncio
import sys
from pathlib import Path

import click

from .commit.manager import CommitManager
from .commit.modes import CommitMode, build_structured_prompt, resolve_commit_settings
from .config.loader import ConfigError, create_default_config, load_config
from .config.models import WorktrackConfig
from .diff.capture import GitDiffCapture
from .sessions.store import JsonSessionStore, SessionStoreError
from .tracking.events import ExecutionEvent
from .tracking.tracker import ExecutionTracker
from .utils.git import GitError
from .utils.logging import setup_logging
from .utils.subprocess import SubprocessError, SubprocessManager

CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
}


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "--config",
    "-c",
    default=".worktrack/config.yml",
    help="Path to configuration file",
    type=click.Path(exists=False, path_type=Path),
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.pass_context
def cli(ctx: click.Context, config: Path, verbose: bool) -> None:
    """Worktrack - track agent executions in git worktrees and record their diffs."""
    setup_logging(level="DEBUG" if verbose else "WARNING")

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


def _load(ctx: click.Context) -> WorktrackConfig:
    """Load config, falling back to defaults when no file exists."""
    config_path: Path = ctx.obj["config_path"]
    if not config_path.exists():
        return WorktrackConfig()

    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        sys.exit(1)

    setup_logging(
        level="DEBUG" if ctx.obj["verbose"] else config.logging.level,
        log_dir=config.logging.log_dir,
        rotation_mb=config.logging.rotation_mb,
        retention_days=config.logging.retention_days,
        use_colors=ctx.obj["verbose"],
        console=ctx.obj["verbose"],
    )
    return config


def _open_store(config: WorktrackConfig) -> JsonSessionStore:
    try:
        return JsonSessionStore(config.store.path)
    except SessionStoreError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration",
)
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Initialize Worktrack configuration."""
    config_path: Path = ctx.obj["config_path"]

    if config_path.exists() and not force:
        click.echo(f"Configuration already exists: {config_path}")
        click.echo("Use --force to overwrite")
        sys.exit(1)

    create_default_config(config_path)
    click.echo(f"✓ Created configuration: {config_path}")


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("session_id")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option(
    "--worktree",
    "-t",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Session worktree (defaults to the registered one, then the current directory)",
)
@click.option("--prompt", "-p", help="Prompt passed to the agent on stdin")
@click.option("--prompt-marker", type=int, help="Prompt marker id to attach to the diff")
@click.option(
    "--commit-mode",
    type=click.Choice([m.value for m in CommitMode]),
    help="Commit policy to register for the session",
)
@click.option("--commit-settings", help="Commit mode settings as a JSON object")
@click.pass_context
def run(
    ctx: click.Context,
    session_id: str,
    command: tuple[str, ...],
    worktree: Path | None,
    prompt: str | None,
    prompt_marker: int | None,
    commit_mode: str | None,
    commit_settings: str | None,
) -> None:
    """Run an agent COMMAND for SESSION_ID and record its diff."""
    config = _load(ctx)
    store = _open_store(config)

    session = store.get_session(session_id)
    if session is None:
        session = store.create_session(
            session_id,
            (worktree or Path.cwd()).resolve(),
            commit_mode=CommitMode(commit_mode) if commit_mode else None,
            commit_mode_settings=commit_settings,
        )
    elif worktree is not None or commit_mode is not None or commit_settings is not None:
        session = store.create_session(
            session_id,
            (worktree or Path(session.worktree_path)).resolve(),
            commit_mode=CommitMode(commit_mode) if commit_mode else session.commit_mode,
            commit_mode_settings=commit_settings or session.commit_mode_settings,
            auto_commit=session.auto_commit,
        )

    success = asyncio.run(
        _run_async(
            config=config,
            store=store,
            session_id=session_id,
            worktree=Path(session.worktree_path),
            command=list(command),
            prompt=prompt,
            prompt_marker=prompt_marker,
            verbose=ctx.obj["verbose"],
        )
    )
    sys.exit(0 if success else 1)


async def _run_async(
    config: WorktrackConfig,
    store: JsonSessionStore,
    session_id: str,
    worktree: Path,
    command: list[str],
    prompt: str | None,
    prompt_marker: int | None,
    verbose: bool,
) -> bool:
    """Track one agent run.

    Returns:
        True if the agent succeeded and its diff was recorded
    """
    tracker = ExecutionTracker(
        sessions=store,
        diff_capture=GitDiffCapture(timeout_sec=config.git.timeout_sec),
        commit_manager=CommitManager(
            git_timeout_sec=config.git.timeout_sec,
            poll_interval_ms=config.commit.poll_interval_ms,
        ),
        structured_timeout_ms=config.commit.structured_timeout_ms,
        default_checkpoint_prefix=config.commit.checkpoint_prefix,
    )

    if verbose:

        def echo_event(event: ExecutionEvent) -> None:
            click.echo(f"[{event.type.value}] {event.session_id} #{event.execution_sequence}")

        tracker.notifier.subscribe(echo_event)

    try:
        context = await tracker.start_execution(
            session_id, worktree, prompt_marker_id=prompt_marker, prompt=prompt
        )
    except (GitError, SessionStoreError) as e:
        click.echo(f"✗ Could not start tracking: {e}", err=True)
        return False

    agent_input = None
    if prompt:
        settings = resolve_commit_settings(
            store.get_session(session_id), config.commit.checkpoint_prefix
        )
        agent_input = build_structured_prompt(prompt, settings)

    click.echo(f"Running execution #{context.execution_sequence} in {worktree}")
    manager = SubprocessManager(timeout_sec=config.agent.timeout_sec)
    try:
        result = await manager.run(command, cwd=worktree, stdin=agent_input)
    except SubprocessError as e:
        tracker.cancel_execution(session_id)
        click.echo(f"✗ Agent failed to start: {e}", err=True)
        return False

    if verbose and result["output"]:
        click.echo(result["output"].rstrip())

    if not result["success"]:
        tracker.cancel_execution(session_id)
        reason = "timed out" if result["timed_out"] else f"exited with {result['exit_code']}"
        click.echo(f"✗ Agent {reason}; execution not recorded", err=True)
        return False

    seen = len(store.get_session_outputs(session_id))
    try:
        record = await tracker.end_execution(session_id)
    except (GitError, SessionStoreError) as e:
        click.echo(f"✗ Could not record execution: {e}", err=True)
        return False

    for output in store.get_session_outputs(session_id)[seen:]:
        click.echo(f"  {output.data.get('subtype')}: {output.data.get('message')}")
    click.echo(
        f"✓ Recorded diff {record.id}: {record.stats_files_changed} files, "
        f"+{record.stats_additions} -{record.stats_deletions}"
    )
    return True


@cli.command()
@click.argument("session_id")
@click.pass_context
def diffs(ctx: click.Context, session_id: str) -> None:
    """List recorded execution diffs for SESSION_ID."""
    store = _open_store(_load(ctx))
    records = store.get_execution_diffs(session_id)

    if not records:
        click.echo(f"No execution diffs for session {session_id}")
        return

    for record in records:
        before = (record.before_commit_hash or "")[:8]
        after = (record.after_commit_hash or "working tree")[:12]
        click.echo(
            f"#{record.execution_sequence} diff {record.id}: "
            f"{record.stats_files_changed} files, +{record.stats_additions} "
            f"-{record.stats_deletions} ({before}..{after})"
        )


@cli.command()
@click.argument("session_id")
@click.option("--id", "diff_ids", type=int, multiple=True, help="Diff record id to include")
@click.option("--patch", is_flag=True, help="Print the combined patch")
@click.pass_context
def combined(ctx: click.Context, session_id: str, diff_ids: tuple[int, ...], patch: bool) -> None:
    """Show the combined diff of SESSION_ID's executions."""
    config = _load(ctx)
    store = _open_store(config)
    tracker = ExecutionTracker(
        sessions=store,
        diff_capture=GitDiffCapture(timeout_sec=config.git.timeout_sec),
        commit_manager=CommitManager(git_timeout_sec=config.git.timeout_sec),
    )

    result = asyncio.run(tracker.get_combined_diff(session_id, list(diff_ids)))
    click.echo(
        f"{result.stats.files_changed} files, "
        f"+{result.stats.additions} -{result.stats.deletions}"
    )
    for file_path in result.changed_files:
        click.echo(f"  {file_path}")
    if patch and result.diff:
        click.echo(result.diff)


@cli.command()
@click.argument("session_id")
@click.pass_context
def messages(ctx: click.Context, session_id: str) -> None:
    """Show commit status messages written to SESSION_ID's output."""
    store = _open_store(_load(ctx))
    outputs = [o for o in store.get_session_outputs(session_id) if o.data.get("type") == "system"]

    if not outputs:
        click.echo(f"No messages for session {session_id}")
        return

    for output in outputs:
        data = output.data
        line = f"[{data.get('subtype')}] {data.get('message')}"
        if data.get("commit_hash"):
            line += f" ({data['commit_hash'][:8]})"
        if data.get("error"):
            line += f"\n    {data['error']}"
        click.echo(line)


if __name__ == "__main__":
    cli()
