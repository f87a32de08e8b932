"""Build and submit the inverse of a committed transaction."""

from __future__ import annotations

import logging
import uuid as uuid_lib
from pathlib import Path
from typing import Callable, List, Optional

from ..config import Config
from ..context import EngineContext
from ..schema import ChangeSet, ControlBlock, DeleteOperation, RenameOperation, StateFile, WriteOperation
from .state import StateStore
from .transaction import TransactionOptions, TransactionOutcome, apply_change_set

LOGGER = logging.getLogger(__name__)

REVERT_REASONING_PREFIX = "Reverting transaction"


def _inverse_operations(past: StateFile, ctx: EngineContext | None) -> List:
    warn = ctx.warn if ctx is not None else LOGGER.warning
    inverse: List = []
    for operation in reversed(past.operations):
        if operation.type == "rename":
            inverse.append(RenameOperation(from_path=operation.to_path, to_path=operation.from_path))
        elif operation.type == "delete":
            content = past.snapshot.get(operation.path)
            if content is None:
                warn("Cannot revert deletion of %s: no original content in snapshot. Skipping.", operation.path)
                continue
            inverse.append(WriteOperation(path=operation.path, content=content))
        elif operation.type == "write":
            if operation.path not in past.snapshot:
                warn("Cannot find original state for %s in snapshot. Skipping.", operation.path)
                continue
            original = past.snapshot[operation.path]
            if original is None:
                inverse.append(DeleteOperation(path=operation.path))
            else:
                inverse.append(WriteOperation(path=operation.path, content=original))
        else:
            raise ValueError(f"Unknown operation type: {operation.type}")
    return inverse


def synthesize_revert(
    past: StateFile,
    project_id: str,
    *,
    ctx: EngineContext | None = None,
) -> Optional[ChangeSet]:
    """Return a change-set undoing ``past``, or ``None`` when nothing can be inverted."""
    operations = _inverse_operations(past, ctx)
    if not operations:
        return None
    reasoning = [
        f"{REVERT_REASONING_PREFIX} {past.uuid}.",
        f"Reasoning from original transaction: {' '.join(past.reasoning)}",
    ]
    control = ControlBlock(
        uuid=str(uuid_lib.uuid4()),
        project_id=project_id,
        reverts_uuid=past.uuid,
    )
    return ChangeSet(control=control, operations=operations, reasoning=reasoning)


def describe_target(identifier: str) -> str:
    value = identifier.strip()
    if value.lstrip("-").isdigit():
        index = abs(int(value))
        return "the latest transaction" if index == 1 else f"the {index}-th latest transaction"
    return f"transaction with UUID '{value}'"


def revert_transaction(
    config: Config,
    identifier: str = "1",
    *,
    cwd: Path | str | None = None,
    include_reverts: bool = False,
    yes: bool = False,
    confirm: Callable[[str], bool] | None = None,
    show: Callable[[StateFile], None] | None = None,
    options: TransactionOptions | None = None,
) -> Optional[TransactionOutcome]:
    """Revert the transaction named by ``identifier`` through the normal pipeline.

    Index lookups skip revert transactions and their targets unless
    ``include_reverts`` is set. Returns ``None`` when nothing was submitted.
    """
    options = options or TransactionOptions()
    if cwd is not None:
        options.cwd = Path(cwd)
    if confirm is not None:
        options.confirm = confirm
    options.yes = options.yes or yes
    ctx = options.ctx or EngineContext.from_config(config, options.cwd)
    options.ctx = ctx
    store = StateStore(ctx)

    target_description = describe_target(identifier)
    ctx.info("Looking for %s...", target_description)
    past = store.find_by_identifier(identifier, skip_reverts=not include_reverts)
    if past is None:
        ctx.error("Could not find %s.", target_description)
        return None

    if show is not None:
        show(past)
    if not options.yes and not options.confirm("Are you sure you want to revert this transaction?"):
        ctx.info("Revert operation cancelled.")
        return None

    change_set = synthesize_revert(past, config.project_id, ctx=ctx)
    if change_set is None:
        ctx.warn("No operations to revert for this transaction.")
        return None

    ctx.info("Creating new transaction %s to perform the revert.", change_set.control.uuid)
    return apply_change_set(config, change_set, options)


__all__ = ["REVERT_REASONING_PREFIX", "describe_target", "revert_transaction", "synthesize_revert"]
