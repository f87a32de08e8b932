"""CLI commands for applying, inspecting, reverting and undoing patch transactions."""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

import typer

from .config import (
    DEFAULT_CONFIG_NAME,
    GITIGNORE_FILE_NAME,
    STATE_DIRECTORY_NAME,
    Config,
    config_path_for,
    create_config,
    get_project_id,
    load_config,
    state_directory_for,
)
from .context import EngineContext
from .engine.revert import revert_transaction
from .engine.state import StateStore
from .engine.transaction import TransactionOptions, TransactionOutcome, apply_change_set
from .engine.undo import list_history, undo_last
from .errors import ConfigError
from .parser import parse_change_set
from .prompts import render_system_prompt
from .schema import StateFile
from .tools.clipboard import ClipboardWatcher
from .tools.notifier import request_approval
from .tools.vcs import GitError, GitRepository

APP_HELP = "Apply LLM-authored patches transactionally, with revert and undo."

app = typer.Typer(help=APP_HELP)

WATCHER_STOP_TIMEOUT = 2.0

_LOG_HANDLER: Optional[logging.Handler] = None


def _configure_logging() -> None:
    """Send ``patchwal`` log records to stderr as plain messages.

    Verbosity is filtered per engine by :class:`EngineContext`, so the logger
    itself lets everything through.
    """
    global _LOG_HANDLER
    logger = logging.getLogger("patchwal")
    if _LOG_HANDLER is not None:
        logger.removeHandler(_LOG_HANDLER)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    _LOG_HANDLER = handler


def _cwd_option() -> Path:
    return typer.Option(Path("."), "--cwd", "-C", help="Project root containing patchwal.yaml.")


def _require_config(cwd: Path) -> Config:
    try:
        config = load_config(cwd)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    if config is None:
        typer.echo(f"Configuration file '{DEFAULT_CONFIG_NAME}' not found. Run 'patchwal init' first.")
        raise typer.Exit(code=1)
    return config


def _confirm(question: str) -> bool:
    return typer.confirm(question, default=False)


def _approval_channel(config: Config):
    if not config.core.enable_notifications:
        return None
    return lambda timeout: request_approval(config.project_id, timeout)


def format_transaction(
    state: StateFile,
    *,
    show_operations: bool = False,
    show_reasoning: bool = True,
) -> List[str]:
    """Render a committed transaction as indented text lines."""
    lines = [f"- UUID: {state.uuid}", f"  Date: {state.created_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}"]
    if state.prompt_summary:
        lines.append(f"  Prompt Summary: {state.prompt_summary}")
    if state.git_commit_msg:
        lines.append(f'  Git Commit: "{state.git_commit_msg}"')
    if state.lines_added is not None or state.lines_removed is not None:
        lines.append(f"  Lines: +{state.lines_added or 0}/-{state.lines_removed or 0}")
    if show_reasoning and state.reasoning:
        lines.append("  Reasoning:")
        lines.extend(f"    - {entry}" for entry in state.reasoning)
    if show_operations and state.operations:
        lines.append("  Changes:")
        for operation in state.operations:
            if operation.type == "rename":
                lines.append(f"    - rename: {operation.from_path} -> {operation.to_path}")
            else:
                lines.append(f"    - {operation.type}: {operation.path}")
    return lines


def _show_transaction(state: StateFile) -> None:
    for line in format_transaction(state):
        typer.echo(line)


def _report_outcome(outcome: TransactionOutcome) -> None:
    if outcome.status == "committed":
        typer.echo(f"Transaction {outcome.uuid} committed.")
        return
    if outcome.status == "skipped":
        typer.echo(f"Skipped {outcome.uuid}: {outcome.reason}")
        return
    label = "rolled back" if outcome.status == "rolled_back" else "failed"
    typer.echo(f"Transaction {outcome.uuid} {label}: {outcome.reason}")
    raise typer.Exit(code=1)


def _update_gitignore(cwd: Path) -> None:
    gitignore = cwd / GITIGNORE_FILE_NAME
    entry = f"/{STATE_DIRECTORY_NAME}/"
    try:
        content = gitignore.read_text(encoding="utf-8")
    except FileNotFoundError:
        gitignore.write_text(f"# patchwal state\n{entry}\n", encoding="utf-8")
        typer.echo(f"Created {GITIGNORE_FILE_NAME} and added {entry}")
        return
    if STATE_DIRECTORY_NAME in content:
        return
    separator = "" if not content or content.endswith("\n") else "\n"
    gitignore.write_text(f"{content}{separator}\n# patchwal state\n{entry}\n", encoding="utf-8")
    typer.echo(f"Updated {GITIGNORE_FILE_NAME} to ignore {entry}")


@app.command()
def init(cwd: Path = _cwd_option()) -> None:
    """Create patchwal.yaml and the state directory, then print the system prompt."""
    _configure_logging()
    try:
        existing = load_config(cwd)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    if existing is not None:
        typer.echo(f"{DEFAULT_CONFIG_NAME} already exists. Initialization skipped.")
        typer.echo(render_system_prompt(existing.project_id, existing.watcher.preferred_strategy))
        return

    project_id = get_project_id(cwd)
    config = create_config(project_id, cwd)
    typer.echo(f"Created configuration file: {config_path_for(cwd).name}")
    state_directory_for(cwd).mkdir(parents=True, exist_ok=True)
    typer.echo(f"Created state directory: {STATE_DIRECTORY_NAME}/")
    _update_gitignore(Path(cwd))
    typer.echo(f"patchwal has been initialized for project '{project_id}'.")
    typer.echo(render_system_prompt(config.project_id, config.watcher.preferred_strategy))
    typer.echo("You are now ready to run 'patchwal watch' in your terminal.")


@app.command()
def apply(
    file: Path = typer.Argument(..., help="File holding the patch text."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve without prompting."),
    cwd: Path = _cwd_option(),
) -> None:
    """Apply a patch read from FILE."""
    _configure_logging()
    config = _require_config(cwd)
    try:
        raw_text = file.read_text(encoding="utf-8")
    except OSError as error:
        typer.echo(f"Unable to read {file}: {error}")
        raise typer.Exit(code=1) from error

    change_set = parse_change_set(raw_text)
    if change_set is None:
        typer.echo("The file does not contain a valid patch.")
        raise typer.Exit(code=1)

    options = TransactionOptions(
        cwd=cwd,
        confirm=_confirm,
        yes=yes,
        approval_channel=_approval_channel(config),
    )
    _report_outcome(apply_change_set(config, change_set, options))


def _handle_clipboard(config: Config, cwd: Path, content: str) -> None:
    ctx = EngineContext.from_config(config, cwd)
    ctx.info("New clipboard content detected. Attempting to parse...")
    change_set = parse_change_set(content)
    if change_set is None:
        ctx.warn("Clipboard content is not a valid patch. Ignoring.")
        return
    if change_set.control.project_id != config.project_id:
        ctx.debug(
            "Ignoring patch for different project (expected '%s', got '%s').",
            config.project_id,
            change_set.control.project_id,
        )
        return
    options = TransactionOptions(
        cwd=cwd,
        confirm=_confirm,
        notify_on_start=True,
        approval_channel=_approval_channel(config),
        ctx=ctx,
    )
    outcome = apply_change_set(config, change_set, options)
    ctx.info("Transaction %s: %s", outcome.uuid, outcome.status.replace("_", " "))
    ctx.info("Watching for next patch...")


def shutdown_watcher(watcher: ClipboardWatcher, timeout: float = WATCHER_STOP_TIMEOUT) -> None:
    """Stop ``watcher`` without waiting longer than ``timeout`` for a blocked callback."""
    watcher.stop(timeout)
    if watcher.running:
        typer.echo("A patch was still being processed; its prompt has been abandoned.")


@app.command()
def watch(cwd: Path = _cwd_option()) -> None:
    """Watch the clipboard for patches and apply them as they arrive."""
    _configure_logging()
    config = _require_config(cwd)
    config_path = config_path_for(cwd)

    def start(current: Config) -> ClipboardWatcher:
        typer.echo(render_system_prompt(current.project_id, current.watcher.preferred_strategy))
        watcher = ClipboardWatcher(
            current.watcher.clipboard_poll_interval,
            lambda content: _handle_clipboard(current, cwd, content),
        )
        watcher.start()
        return watcher

    watcher: Optional[ClipboardWatcher] = start(config)
    last_mtime = config_path.stat().st_mtime
    try:
        while True:
            time.sleep(0.5)
            if not config.core.watch_config:
                continue
            try:
                mtime = config_path.stat().st_mtime
            except FileNotFoundError:
                mtime = None
            if mtime == last_mtime:
                continue
            last_mtime = mtime
            typer.echo("Configuration file change detected. Reloading...")
            if watcher is not None:
                watcher.stop()
                watcher = None
            try:
                reloaded = load_config(cwd)
            except ConfigError as error:
                typer.echo(f"{error} Services paused.")
                continue
            if reloaded is None:
                typer.echo(f"{DEFAULT_CONFIG_NAME} has been deleted. Services paused.")
                continue
            config = reloaded
            watcher = start(config)
    except KeyboardInterrupt:
        typer.echo("Stopping watcher.")
    finally:
        if watcher is not None:
            shutdown_watcher(watcher)


@app.command()
def log(cwd: Path = _cwd_option()) -> None:
    """List committed transactions, most recent first."""
    _configure_logging()
    config = _require_config(cwd)
    ctx = EngineContext.from_config(config, cwd)
    if not ctx.state_dir.is_dir():
        typer.echo(f"State directory '{STATE_DIRECTORY_NAME}' not found. Run 'patchwal init' first.")
        return

    pending = StateStore(ctx).list_pending()
    for uuid in pending:
        typer.echo(f"Warning: pending transaction {uuid} was interrupted and never committed.")

    history = list_history(ctx)
    if not history:
        typer.echo("No committed transactions found.")
        return
    typer.echo("Committed Transactions (most recent first):")
    typer.echo("-------------------------------------------")
    for state in history:
        for line in format_transaction(state, show_operations=True):
            typer.echo(line)
        typer.echo("")


@app.command()
def revert(
    identifier: str = typer.Argument("1", help="Transaction uuid, or 1-based index of recent transactions."),
    include_reverts: bool = typer.Option(
        False,
        "--include-reverts",
        help="Count revert transactions and their targets when resolving an index.",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts."),
    cwd: Path = _cwd_option(),
) -> None:
    """Revert a committed transaction by applying its inverse."""
    _configure_logging()
    config = _require_config(cwd)

    def show(state: StateFile) -> None:
        typer.echo("Transaction to be reverted:")
        _show_transaction(state)

    outcome = revert_transaction(
        config,
        identifier,
        cwd=cwd,
        include_reverts=include_reverts,
        yes=yes,
        confirm=_confirm,
        show=show,
        options=TransactionOptions(cwd=cwd, approval_channel=_approval_channel(config)),
    )
    if outcome is not None:
        _report_outcome(outcome)


@app.command()
def undo(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    cwd: Path = _cwd_option(),
) -> None:
    """Restore the files of the most recent transaction and mark it undone."""
    _configure_logging()
    config = _require_config(cwd)
    ctx = EngineContext.from_config(config, cwd)

    def show(state: StateFile) -> None:
        typer.echo("The last transaction to be undone is:")
        _show_transaction(state)

    outcome = undo_last(ctx, yes=yes, confirm=_confirm, show=show)
    if outcome.status == "undone":
        typer.echo(f"Transaction {outcome.uuid} undone.")
    elif outcome.status == "nothing":
        typer.echo("No committed transactions found to undo.")
    elif outcome.status == "failed":
        typer.echo(f"Undo failed: {outcome.reason}")
        raise typer.Exit(code=1)


@app.command("git-commit")
def git_commit(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    cwd: Path = _cwd_option(),
) -> None:
    """Commit the working tree with the latest transaction's git commit message."""
    _configure_logging()
    config = _require_config(cwd)
    ctx = EngineContext.from_config(config, cwd)
    latest = StateStore(ctx).find_latest()
    if latest is None:
        typer.echo("No committed transactions found.")
        return
    if not latest.git_commit_msg:
        typer.echo("The latest transaction does not have a git commit message.")
        _show_transaction(latest)
        return

    _show_transaction(latest)
    message = latest.git_commit_msg
    if not yes and not _confirm(f"Run 'git add .' and 'git commit -m \"{message}\"'?"):
        typer.echo("Commit operation cancelled.")
        return
    try:
        sha = GitRepository(ctx.cwd).commit_all(message)
    except GitError as error:
        typer.echo(f"Git commit failed: {error}")
        raise typer.Exit(code=1) from error
    if sha is None:
        typer.echo("Nothing to commit.")
    else:
        typer.echo(f"Git commit successful: {sha[:7]}")


if __name__ == "__main__":
    app()
