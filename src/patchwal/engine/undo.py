"""Undo of the most recent committed transaction, and history listing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Literal, Optional

from ..context import EngineContext
from ..errors import RollbackError, StateIOError
from ..schema import StateFile
from .executor import restore_snapshot
from .state import StateStore

UndoStatus = Literal["undone", "nothing", "cancelled", "failed"]


@dataclass(slots=True)
class UndoOutcome:
    status: UndoStatus
    uuid: Optional[str] = None
    reason: str = ""


def list_history(ctx: EngineContext) -> List[StateFile]:
    """Committed transactions, most recent first."""
    return StateStore(ctx).read_all()


def undo_last(
    ctx: EngineContext,
    *,
    yes: bool = False,
    confirm: Callable[[str], bool] | None = None,
    show: Callable[[StateFile], None] | None = None,
) -> UndoOutcome:
    """Restore the snapshot of the latest committed transaction and mark it undone.

    Bypasses the transaction pipeline, so no new record is written. When the
    restore fails the record stays committed.
    """
    store = StateStore(ctx)
    ctx.info("Attempting to undo the last transaction...")
    latest = store.find_latest()
    if latest is None:
        ctx.warn("No committed transactions found to undo.")
        return UndoOutcome(status="nothing", reason="No committed transactions.")

    if show is not None:
        show(latest)
    if not yes and not (confirm is not None and confirm("Are you sure you want to undo this transaction?")):
        ctx.info("Undo operation cancelled.")
        return UndoOutcome(status="cancelled", uuid=latest.uuid)

    ctx.info("Undoing transaction %s...", latest.uuid)
    try:
        restore_snapshot(latest.snapshot, ctx.cwd)
    except RollbackError as error:
        ctx.error("Failed to undo transaction: %s", error)
        ctx.error("Your file system may be in a partially restored state. Please check your files.")
        return UndoOutcome(status="failed", uuid=latest.uuid, reason=str(error))
    ctx.info("  - Restored file snapshot.")

    try:
        store.mark_undone(latest.uuid)
    except StateIOError as error:
        ctx.error("%s", error)
        return UndoOutcome(status="failed", uuid=latest.uuid, reason=str(error))
    ctx.info("  - Moved transaction record to 'undone'.")
    return UndoOutcome(status="undone", uuid=latest.uuid)


__all__ = ["UndoOutcome", "list_history", "undo_last"]
