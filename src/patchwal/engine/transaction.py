"""The transaction pipeline: validate, snapshot, apply, gate, then commit or roll back."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Mapping, Optional

from ..config import Config
from ..context import EngineContext
from ..errors import ApplyError, RollbackError, StateIOError, ValidationError
from ..schema import ChangeSet, FileSnapshot, PatchStrategy, StateFile, ensure_record_id, operation_paths
from ..tools import notifier
from ..tools.fs import resolve_in_project
from ..tools.shell import get_error_count, run_command
from ..tools.strategies import ApplyDiff
from ..tools.vcs import GitError, GitRepository, branch_name_for
from .approval import ApprovalChannel, ApprovalPolicy, ConfirmCallback, decide_approval
from .executor import affected_paths, apply_operations, create_snapshot, restore_snapshot
from .linestats import total_line_changes
from .state import StateStore

LOGGER = logging.getLogger(__name__)

OutcomeStatus = Literal["skipped", "committed", "rolled_back", "failed"]


def decline(question: str) -> bool:
    """Confirmation callback for non-interactive runs: always answers no."""
    return False


@dataclass(slots=True)
class TransactionOptions:
    """Per-invocation collaborators for :func:`apply_change_set`."""

    cwd: Path = field(default_factory=Path.cwd)
    confirm: ConfirmCallback = decline
    yes: bool = False
    notify_on_start: bool = False
    approval_channel: Optional[ApprovalChannel] = None
    strategies: Optional[Mapping[PatchStrategy, ApplyDiff]] = None
    ctx: Optional[EngineContext] = None


@dataclass(slots=True)
class TransactionOutcome:
    status: OutcomeStatus
    uuid: str
    reason: str = ""
    state: Optional[StateFile] = None
    error_count: int = 0

    @property
    def committed(self) -> bool:
        return self.status == "committed"


def validate_change_set(config: Config, change_set: ChangeSet, store: StateStore) -> None:
    """Raise :class:`ValidationError` when ``change_set`` must be skipped."""
    control = change_set.control
    try:
        ensure_record_id(control.uuid)
    except ValueError as error:
        raise ValidationError(str(error)) from error
    if control.project_id != config.project_id:
        raise ValidationError(
            f"projectId mismatch (expected '{config.project_id}', got '{control.project_id}')."
        )
    if store.has_been_processed(control.uuid):
        raise ValidationError(f"uuid '{control.uuid}' has already been processed.")

    count = len(change_set.operations)
    minimum = config.patch.min_file_changes
    maximum = config.patch.max_file_changes
    if minimum and count < minimum:
        raise ValidationError(f"{count} operation(s) is below the minimum of {minimum}.")
    if maximum and count > maximum:
        raise ValidationError(f"{count} operation(s) exceeds the maximum of {maximum}.")

    root = store.ctx.cwd
    for operation in change_set.operations:
        for path in operation_paths(operation):
            if not resolve_in_project(path, root).resolve().is_relative_to(root):
                raise ValidationError(f"Path resolves outside the project: {path}")


def _rollback(store: StateStore, snapshot: FileSnapshot | None, uuid: str) -> None:
    """Restore ``snapshot`` and drop the pending record; never raises."""
    ctx = store.ctx
    if snapshot is not None:
        try:
            restore_snapshot(snapshot, ctx.cwd)
        except RollbackError as error:
            ctx.error("FATAL: rollback of %s failed: %s", uuid, error)
            for path, message in error.failures.items():
                ctx.error("  - %s: %s", path, message)
        except Exception as error:  # noqa: BLE001
            ctx.error("FATAL: rollback of %s failed unexpectedly: %s", uuid, error)
    try:
        store.delete_pending(uuid)
    except OSError as error:
        ctx.error("Could not remove pending record for %s: %s", uuid, error)


def _create_git_branch(config: Config, ctx: EngineContext, state: StateFile) -> None:
    name = branch_name_for(
        config.git.git_branch_prefix,
        config.git.git_branch_template,
        uuid=state.uuid,
        git_commit_msg=state.git_commit_msg,
    )
    try:
        GitRepository.discover(ctx.cwd).create_branch(name)
    except GitError as error:
        ctx.warn("Could not create git branch %s: %s", name, error)
        return
    ctx.info("  - Switched to git branch %s", name)


def _run_hook(label: str, command: str, ctx: EngineContext) -> None:
    if not command:
        return
    ctx.info("  - Running %s: %s", label, command)
    result = run_command(command, ctx.cwd)
    if not result.ok:
        raise ApplyError(
            f"{label} failed with exit code {result.exit_code}",
            details={"command": command, "stderr": result.stderr.strip()},
        )


def apply_change_set(
    config: Config,
    change_set: ChangeSet,
    options: TransactionOptions | None = None,
) -> TransactionOutcome:
    """Process one change-set end to end.

    Returns a :class:`TransactionOutcome`; skipped, rolled back and failed
    transactions are reported through it rather than raised.
    """
    options = options or TransactionOptions()
    ctx = options.ctx or EngineContext.from_config(config, options.cwd)
    store = StateStore(ctx)
    control = change_set.control
    uuid = control.uuid
    notifications = config.core.enable_notifications

    try:
        validate_change_set(config, change_set, store)
    except ValidationError as error:
        ctx.info("Skipping patch %s: %s", uuid, error)
        return TransactionOutcome(status="skipped", uuid=uuid, reason=str(error))

    if options.notify_on_start:
        notifier.notify_patch_detected(control.project_id, enabled=notifications)

    ctx.info("Starting transaction for patch %s...", uuid)
    if change_set.reasoning:
        ctx.info("Reasoning:\n  %s", "\n  ".join(change_set.reasoning))

    def confirm(question: str) -> bool:
        if options.yes:
            return True
        notifier.notify_approval_required(control.project_id, enabled=notifications)
        return options.confirm(question)

    channel = None if options.yes else options.approval_channel

    snapshot: FileSnapshot | None = None
    state: StateFile | None = None
    error_count = 0
    try:
        snapshot = create_snapshot(affected_paths(change_set.operations), ctx.cwd)
        ctx.info("  - Took snapshot of %d file(s).", len(snapshot))
        _run_hook("pre-command", config.patch.pre_command, ctx)

        state = StateFile(
            uuid=uuid,
            project_id=control.project_id,
            reasoning=change_set.reasoning,
            operations=change_set.operations,
            snapshot=snapshot,
            git_commit_msg=control.git_commit_msg,
            prompt_summary=control.prompt_summary,
            reverts_uuid=control.reverts_uuid,
        )
        store.write_pending(state)
        ctx.info("  - Staged changes to %s", store.pending_path(uuid).name)

        new_contents = apply_operations(change_set.operations, ctx.cwd, options.strategies)
        changes = total_line_changes(change_set.operations, snapshot, new_contents)
        state.lines_added = changes.added
        state.lines_removed = changes.removed
        ctx.info("  - File operations applied (+%d/-%d lines).", changes.added, changes.removed)

        if config.git.auto_git_branch:
            _create_git_branch(config, ctx, state)

        _run_hook("post-command", config.patch.post_command, ctx)
        error_count = get_error_count(config.patch.linter, ctx.cwd, new_contents.keys())
        if config.patch.linter:
            ctx.info("  - Final linter error count: %d", error_count)

        decision = decide_approval(
            ApprovalPolicy.from_settings(config.patch),
            error_count,
            confirm,
            channel,
        )
    except Exception as error:  # noqa: BLE001
        ctx.error("Transaction %s failed: %s", uuid, error)
        ctx.warn("Rolling back from snapshot...")
        _rollback(store, snapshot, uuid)
        notifier.notify_failure(uuid, enabled=notifications)
        return TransactionOutcome(
            status="rolled_back", uuid=uuid, reason=str(error), state=state, error_count=error_count
        )

    if not decision.approved:
        ctx.warn("  - %s Rolling back changes...", decision.reason)
        _rollback(store, snapshot, uuid)
        ctx.info("Transaction %s rolled back.", uuid)
        notifier.notify_failure(uuid, enabled=notifications)
        return TransactionOutcome(
            status="rolled_back", uuid=uuid, reason=decision.reason, state=state, error_count=error_count
        )

    try:
        state.approved = True
        store.write_pending(state)
        store.commit(uuid)
    except StateIOError as error:
        ctx.error("FATAL: %s Inspect %s manually.", error, store.pending_path(uuid))
        return TransactionOutcome(
            status="failed", uuid=uuid, reason=str(error), state=state, error_count=error_count
        )

    ctx.info("Transaction %s committed successfully.", uuid)
    notifier.notify_success(uuid, enabled=notifications)
    return TransactionOutcome(
        status="committed", uuid=uuid, reason=decision.reason, state=state, error_count=error_count
    )


__all__ = [
    "TransactionOptions",
    "TransactionOutcome",
    "apply_change_set",
    "decline",
    "validate_change_set",
]
