"""Snapshot capture, sequential operation application and snapshot restoration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence

from ..errors import ApplyError, RollbackError
from ..schema import FileSnapshot, PatchStrategy, operation_paths
from ..tools.fs import (
    delete_file,
    read_file_content,
    remove_empty_parent_directories,
    rename_file,
    resolve_in_project,
    write_file_content,
)
from ..tools.strategies import STRATEGIES, ApplyDiff, get_strategy

LOGGER = logging.getLogger(__name__)


def affected_paths(operations: Iterable) -> List[str]:
    """Return every path touched by ``operations`` in first-seen order."""
    seen: Dict[str, None] = {}
    for operation in operations:
        for path in operation_paths(operation):
            seen.setdefault(path, None)
    return list(seen)


def create_snapshot(paths: Iterable[str], cwd: Path | str) -> FileSnapshot:
    """Read the current content of ``paths``; missing files map to ``None``."""
    snapshot: FileSnapshot = {}
    for path in paths:
        snapshot[path] = read_file_content(path, cwd)
    return snapshot


def _write_content(
    operation,
    current: str | None,
    strategies: Mapping[PatchStrategy, ApplyDiff],
) -> str:
    if operation.strategy == PatchStrategy.REPLACE:
        return operation.content

    if current is None and operation.strategy == PatchStrategy.MULTI_SEARCH_REPLACE:
        raise ApplyError(
            f"Cannot use 'multi-search-replace' on a new file: {operation.path}",
            details={"path": operation.path},
        )
    try:
        service = get_strategy(operation.strategy, strategies)
    except (KeyError, ValueError) as error:
        raise ApplyError(
            f"Unsupported patch strategy '{operation.strategy}' for {operation.path}",
            details={"path": operation.path},
        ) from error

    result = service(current or "", operation.content)
    if not result.success:
        raise ApplyError(
            f"Failed to apply {operation.strategy.value} patch to {operation.path}: {result.error}",
            details={"path": operation.path, "strategy": operation.strategy.value},
        )
    return result.content


def apply_operations(
    operations: Sequence,
    cwd: Path | str,
    strategies: Mapping[PatchStrategy, ApplyDiff] | None = None,
) -> Dict[str, str]:
    """Apply ``operations`` one after another and return the final written contents.

    Each operation sees the in-flight state left by the operations before it.
    Raises :class:`ApplyError` with ``completed`` set to the number of
    operations applied before the failing one.
    """
    table = STRATEGIES if strategies is None else strategies
    in_flight: Dict[str, str | None] = {}
    new_contents: Dict[str, str] = {}

    def current_content(path: str) -> str | None:
        if path in in_flight:
            return in_flight[path]
        return read_file_content(path, cwd)

    for index, operation in enumerate(operations):
        try:
            if operation.type == "delete":
                delete_file(operation.path, cwd)
                in_flight[operation.path] = None
                new_contents.pop(operation.path, None)
            elif operation.type == "rename":
                content = current_content(operation.from_path)
                rename_file(operation.from_path, operation.to_path, cwd)
                in_flight[operation.from_path] = None
                in_flight[operation.to_path] = content
                pending = new_contents.pop(operation.from_path, None)
                if pending is not None:
                    new_contents[operation.to_path] = pending
                elif content is not None:
                    new_contents[operation.to_path] = content
            elif operation.type == "write":
                final = _write_content(operation, current_content(operation.path), table)
                write_file_content(operation.path, final, cwd)
                in_flight[operation.path] = final
                new_contents[operation.path] = final
            else:
                raise ApplyError(f"Unknown operation type: {operation.type}")
        except ApplyError as error:
            error.completed = index
            raise
        except OSError as error:
            raise ApplyError(
                f"Operation {index + 1} ({operation.type}) failed: {error}",
                completed=index,
            ) from error
        LOGGER.debug("Applied %s on %s", operation.type, ", ".join(operation_paths(operation)))

    return new_contents


def restore_snapshot(snapshot: FileSnapshot, cwd: Path | str) -> None:
    """Write back every file in ``snapshot`` and remove those that did not exist.

    Directories emptied by the removals are pruned toward the project root.
    All per-file failures are collected into one :class:`RollbackError`.
    """
    root = Path(cwd).resolve()
    failures: Dict[str, str] = {}
    emptied: set[Path] = set()

    for path, content in snapshot.items():
        try:
            if content is None:
                delete_file(path, root)
                emptied.add(resolve_in_project(path, root).parent)
            else:
                write_file_content(path, content, root)
        except OSError as error:
            failures[path] = str(error)

    # Directories are not snapshotted, so one that was already empty before the
    # transaction is pruned as well.
    for directory in sorted(emptied, key=lambda item: len(item.parts), reverse=True):
        try:
            remove_empty_parent_directories(directory, root)
        except OSError as error:
            LOGGER.debug("Could not prune %s: %s", directory, error)

    if failures:
        raise RollbackError(
            f"Failed to restore {len(failures)} file(s): {', '.join(sorted(failures))}",
            failures=failures,
        )


__all__ = ["affected_paths", "apply_operations", "create_snapshot", "restore_snapshot"]
