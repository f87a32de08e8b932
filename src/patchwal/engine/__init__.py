"""Transaction engine: applier, approval gate, WAL, revert and undo."""

from .approval import ApprovalDecision, ApprovalPolicy, decide_approval
from .executor import affected_paths, apply_operations, create_snapshot, restore_snapshot
from .linestats import LineChanges, calculate_line_changes
from .revert import revert_transaction, synthesize_revert
from .state import StateStore
from .transaction import TransactionOptions, TransactionOutcome, apply_change_set
from .undo import UndoOutcome, list_history, undo_last

__all__ = [
    "ApprovalDecision",
    "ApprovalPolicy",
    "LineChanges",
    "StateStore",
    "TransactionOptions",
    "TransactionOutcome",
    "UndoOutcome",
    "affected_paths",
    "apply_change_set",
    "apply_operations",
    "calculate_line_changes",
    "create_snapshot",
    "decide_approval",
    "list_history",
    "restore_snapshot",
    "revert_transaction",
    "synthesize_revert",
    "undo_last",
]
