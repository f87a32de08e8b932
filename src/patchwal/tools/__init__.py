"""Collaborators used by the engine: filesystem, strategies, shell, git, desktop."""

from .clipboard import ClipboardError, ClipboardWatcher, read_clipboard
from .notifier import ApprovalChannelResult, request_approval, send_notification
from .shell import ShellResult, get_error_count, run_command
from .strategies import STRATEGIES, DiffResult, apply_multi_search_replace, apply_new_unified, get_strategy
from .vcs import GitError, GitRepository

__all__ = [
    "ApprovalChannelResult",
    "ClipboardError",
    "ClipboardWatcher",
    "DiffResult",
    "GitError",
    "GitRepository",
    "STRATEGIES",
    "ShellResult",
    "apply_multi_search_replace",
    "apply_new_unified",
    "get_error_count",
    "get_strategy",
    "read_clipboard",
    "request_approval",
    "run_command",
    "send_notification",
]
