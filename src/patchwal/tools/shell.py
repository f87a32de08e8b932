"""Shell hooks and linter error counting.

Commands come from project configuration. They are tokenised with
:func:`shlex.split` and executed without a shell, with their output buffered.
"""

from __future__ import annotations

import logging
import re
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import libcst as cst

LOGGER = logging.getLogger(__name__)

LIBCST_LINTER = "libcst"
EXIT_COMMAND_NOT_FOUND = 127

_ERROR_LINE = re.compile(r"\berror\b", re.IGNORECASE)


@dataclass(slots=True)
class ShellResult:
    """Buffered outcome of a shell command."""

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def short_message(self) -> str:
        if self.ok:
            return f"{self.command}: passed"
        fallback = self.stderr.strip() or self.stdout.strip()
        snippet = fallback.splitlines()[0] if fallback else f"exit code {self.exit_code}"
        return f"{self.command}: failed ({snippet})"


def run_command(command: str, cwd: Path | str) -> ShellResult:
    """Run ``command`` in ``cwd``; an empty command succeeds without running anything."""
    if not command or not command.strip():
        return ShellResult(command="", exit_code=0)

    try:
        argv = shlex.split(command)
    except ValueError as error:
        return ShellResult(command=command, exit_code=2, stderr=f"Unable to parse command: {error}")

    if shutil.which(argv[0]) is None and not Path(argv[0]).exists():
        return ShellResult(
            command=command,
            exit_code=EXIT_COMMAND_NOT_FOUND,
            stderr=f"Executable not available: {argv[0]}",
        )

    LOGGER.debug("Running %s in %s", argv, cwd)
    try:
        process = subprocess.run(  # noqa: S603  # command is sourced from project config
            argv,
            cwd=Path(cwd),
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as error:
        return ShellResult(command=command, exit_code=EXIT_COMMAND_NOT_FOUND, stderr=str(error))
    except PermissionError as error:
        return ShellResult(command=command, exit_code=126, stderr=str(error))
    return ShellResult(
        command=command,
        exit_code=process.returncode,
        stdout=process.stdout,
        stderr=process.stderr,
    )


def count_python_syntax_errors(paths: Iterable[str], cwd: Path | str) -> int:
    """Return how many existing ``.py`` files among ``paths`` libcst cannot parse."""
    root = Path(cwd)
    errors = 0
    for relative in paths:
        if not relative.endswith(".py"):
            continue
        target = root / relative
        try:
            source = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            continue
        try:
            cst.parse_module(source)
        except cst.ParserSyntaxError as error:
            LOGGER.debug("Syntax error in %s: %s", relative, error)
            errors += 1
    return errors


def get_error_count(linter: str, cwd: Path | str, paths: Iterable[str] = ()) -> int:
    """Return the number of linter errors for the project.

    ``libcst`` runs the built-in syntax check over ``paths``. Any other value is
    executed as a command: exit code 0 means no errors, otherwise the number of
    output lines mentioning ``error`` is reported, and at least one.
    """
    if not linter or not linter.strip():
        return 0
    if linter.strip() == LIBCST_LINTER:
        return count_python_syntax_errors(paths, cwd)

    result = run_command(linter, cwd)
    if result.ok:
        return 0
    matches = sum(1 for line in result.output.splitlines() if _ERROR_LINE.search(line))
    return max(matches, 1)


__all__ = [
    "EXIT_COMMAND_NOT_FOUND",
    "LIBCST_LINTER",
    "ShellResult",
    "count_python_syntax_errors",
    "get_error_count",
    "run_command",
]
