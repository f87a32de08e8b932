"""Clipboard access and the polling watcher that feeds patches to the engine."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import threading
from typing import Callable, Sequence

LOGGER = logging.getLogger(__name__)

ClipboardReader = Callable[[], str]
ClipboardCallback = Callable[[str], None]


class ClipboardError(RuntimeError):
    """Raised when no clipboard backend is usable."""


_BACKENDS: Sequence[Sequence[str]] = (
    ("pbpaste",),
    ("wl-paste", "--no-newline"),
    ("xclip", "-selection", "clipboard", "-o"),
    ("xsel", "--clipboard", "--output"),
    ("powershell", "-NoProfile", "-Command", "Get-Clipboard"),
)


def _select_backend() -> Sequence[str] | None:
    for command in _BACKENDS:
        if command[0] == "pbpaste" and sys.platform != "darwin":
            continue
        if shutil.which(command[0]):
            return command
    return None


def read_clipboard() -> str:
    """Return the current clipboard text."""
    command = _select_backend()
    if command is None:
        raise ClipboardError("No clipboard reader found (install wl-clipboard, xclip or xsel).")
    process = subprocess.run(  # noqa: S603
        list(command),
        capture_output=True,
        text=True,
        check=False,
        timeout=10,
    )
    if process.returncode != 0:
        raise ClipboardError(process.stderr.strip() or f"{command[0]} exited with {process.returncode}")
    return process.stdout


class ClipboardWatcher:
    """Poll the clipboard and hand new, non-empty content to ``callback``.

    A single background thread runs the ticks, and the callback runs inside the
    tick, so two callbacks never overlap even when one outlasts the interval.
    """

    def __init__(
        self,
        interval_ms: int,
        callback: ClipboardCallback,
        *,
        reader: ClipboardReader = read_clipboard,
    ) -> None:
        self.interval = max(interval_ms, 1) / 1000.0
        self.callback = callback
        self.reader = reader
        self.last_content = ""
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> bool:
        """Read once; return True when the callback ran."""
        try:
            content = self.reader()
        except (ClipboardError, OSError, subprocess.SubprocessError) as error:
            LOGGER.warning("Could not read from clipboard: %s", error)
            return False
        if not content or content == self.last_content:
            return False
        self.last_content = content
        self.callback(content)
        return True

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Clipboard callback failed.")
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self.running:
            return
        LOGGER.info("Watching clipboard every %dms...", int(self.interval * 1000))
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="patchwal-clipboard", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop polling; an in-flight callback is allowed to finish.

        With a ``timeout`` the join may give up early, in which case
        :attr:`running` stays true until the callback returns.
        """
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                return
        self._thread = None


__all__ = [
    "ClipboardCallback",
    "ClipboardError",
    "ClipboardReader",
    "ClipboardWatcher",
    "read_clipboard",
]
