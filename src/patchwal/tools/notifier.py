"""Desktop notifications and the notification-based approval channel.

Notifications are fire-and-forget: the notifier process is spawned detached
and never awaited, and any failure is logged at debug level only. The single
blocking call is :func:`request_approval`, which waits for an action button at
most ``timeout`` seconds.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from typing import Literal

LOGGER = logging.getLogger(__name__)

APP_NAME = "patchwal"

ApprovalChannelResult = Literal["approved", "rejected", "timeout", "unsupported"]


def _notification_command(title: str, message: str) -> list[str] | None:
    if sys.platform == "darwin" and shutil.which("osascript"):
        script = f'display notification "{_escape(message)}" with title "{_escape(title)}"'
        return ["osascript", "-e", script]
    if shutil.which("notify-send"):
        return ["notify-send", "--app-name", APP_NAME, title, message]
    return None


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def send_notification(title: str, message: str, *, enabled: bool = True) -> None:
    """Show a desktop notification without waiting for it."""
    if not enabled:
        return
    command = _notification_command(title, message)
    if command is None:
        LOGGER.debug("No notification backend available; skipping %r.", message)
        return
    try:
        subprocess.Popen(  # noqa: S603
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as error:
        LOGGER.debug("Notification failed: %s", error)


def notify_patch_detected(project_id: str, *, enabled: bool = True) -> None:
    send_notification(APP_NAME, f"New patch detected for project `{project_id}`.", enabled=enabled)


def notify_approval_required(project_id: str, *, enabled: bool = True) -> None:
    send_notification(APP_NAME, f"Action required to approve changes for `{project_id}`.", enabled=enabled)


def notify_success(uuid: str, *, enabled: bool = True) -> None:
    send_notification(APP_NAME, f"Patch `{uuid}` applied successfully.", enabled=enabled)


def notify_failure(uuid: str, *, enabled: bool = True) -> None:
    send_notification(APP_NAME, f"Patch `{uuid}` failed and was rolled back.", enabled=enabled)


def request_approval(project_id: str, timeout: float) -> ApprovalChannelResult:
    """Ask for approval through an actionable notification.

    Requires a ``notify-send`` that supports ``--action`` and ``--wait``.
    """
    if shutil.which("notify-send") is None:
        return "unsupported"
    command = [
        "notify-send",
        "--app-name",
        APP_NAME,
        "--action=approve=Approve",
        "--action=reject=Reject",
        "--wait",
        APP_NAME,
        f"Approve changes for `{project_id}`?",
    ]
    try:
        process = subprocess.run(  # noqa: S603
            command,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return "timeout"
    except OSError as error:
        LOGGER.debug("Approval notification failed: %s", error)
        return "unsupported"

    if process.returncode != 0:
        LOGGER.debug("notify-send rejected approval actions: %s", process.stderr.strip())
        return "unsupported"
    choice = process.stdout.strip()
    if choice == "approve":
        return "approved"
    if choice == "reject":
        return "rejected"
    # Dismissed without choosing an action.
    return "timeout"


__all__ = [
    "APP_NAME",
    "ApprovalChannelResult",
    "notify_approval_required",
    "notify_failure",
    "notify_patch_detected",
    "notify_success",
    "request_approval",
    "send_notification",
]
