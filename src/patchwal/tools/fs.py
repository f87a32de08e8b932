"""Filesystem primitives used by the executor, the WAL and undo."""

from __future__ import annotations

import errno
import os
import shutil
from pathlib import Path

__all__ = [
    "delete_file",
    "is_directory_empty",
    "read_file_content",
    "remove_empty_parent_directories",
    "rename_file",
    "resolve_in_project",
    "safe_rename",
    "write_file_content",
]


def resolve_in_project(path: str, cwd: Path | str) -> Path:
    """Resolve a project-relative ``path`` against ``cwd``."""
    return Path(cwd).resolve() / path


def read_file_content(path: str, cwd: Path | str) -> str | None:
    """Return the exact text of ``path`` or ``None`` when it does not exist.

    Newlines are not translated so that restored files are byte-identical.
    """
    target = resolve_in_project(path, cwd)
    try:
        with target.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()
    except FileNotFoundError:
        return None


def write_file_content(path: str, content: str, cwd: Path | str) -> None:
    target = resolve_in_project(path, cwd)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8", newline="") as handle:
        handle.write(content)


def delete_file(path: str, cwd: Path | str) -> None:
    """Unlink ``path``; a missing file is not an error."""
    target = resolve_in_project(path, cwd)
    try:
        target.unlink()
    except FileNotFoundError:
        return
    except NotADirectoryError:
        return


def safe_rename(source: Path, destination: Path) -> None:
    """Rename ``source`` to ``destination``, copying across devices when needed.

    The copy-then-unlink fallback is not atomic: a crash between the two steps
    leaves both files in place.
    """
    try:
        os.rename(source, destination)
    except OSError as error:
        if error.errno != errno.EXDEV:
            raise
        shutil.copy2(source, destination)
        os.unlink(source)


def rename_file(from_path: str, to_path: str, cwd: Path | str) -> None:
    source = resolve_in_project(from_path, cwd)
    destination = resolve_in_project(to_path, cwd)
    destination.parent.mkdir(parents=True, exist_ok=True)
    safe_rename(source, destination)


def is_directory_empty(directory: Path) -> bool:
    """Return True for an existing, empty directory."""
    try:
        with os.scandir(directory) as entries:
            return next(entries, None) is None
    except OSError:
        return False


def remove_empty_parent_directories(directory: Path, root: Path) -> None:
    """Remove ``directory`` and its ancestors while empty, never touching ``root``."""
    root = root.resolve()
    current = directory.resolve()
    while current != root and current.is_relative_to(root):
        if not current.exists():
            current = current.parent
            continue
        if not is_directory_empty(current):
            return
        current.rmdir()
        current = current.parent
