"""Per-operation line statistics based on longest common subsequence length."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from ..schema import FileSnapshot


@dataclass(slots=True, frozen=True)
class LineChanges:
    added: int = 0
    removed: int = 0

    def __add__(self, other: "LineChanges") -> "LineChanges":
        return LineChanges(self.added + other.added, self.removed + other.removed)


def _split(content: str) -> list[str]:
    if not content:
        return []
    lines = content.replace("\r\n", "\n").split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def lcs_length(left: Sequence[str], right: Sequence[str]) -> int:
    """Return the LCS length using one DP row sized by the shorter sequence."""
    if len(left) < len(right):
        left, right = right, left
    if not right:
        return 0
    row = [0] * (len(right) + 1)
    for item in left:
        diagonal = 0
        for index, other in enumerate(right, start=1):
            above = row[index]
            if item == other:
                row[index] = diagonal + 1
            elif row[index - 1] > above:
                row[index] = row[index - 1]
            diagonal = above
    return row[-1]


def count_line_changes(old_content: str | None, new_content: str | None) -> LineChanges:
    """Count added and removed lines between two versions of a file."""
    if old_content == new_content:
        return LineChanges()
    new_lines = _split(new_content or "")
    if old_content is None:
        return LineChanges(added=len(new_lines))
    old_lines = _split(old_content)
    if new_content is None:
        return LineChanges(removed=len(old_lines))
    common = lcs_length(old_lines, new_lines)
    return LineChanges(added=len(new_lines) - common, removed=len(old_lines) - common)


def calculate_line_changes(
    operation,
    snapshot: FileSnapshot,
    new_contents: Mapping[str, str],
) -> LineChanges:
    """Line statistics for a single operation against the pre-transaction snapshot."""
    if operation.type == "rename":
        return LineChanges()
    if operation.type == "delete":
        return count_line_changes(snapshot.get(operation.path), None)
    if operation.type == "write":
        return count_line_changes(snapshot.get(operation.path), new_contents.get(operation.path, ""))
    raise ValueError(f"Unknown operation type: {operation.type}")


def total_line_changes(operations, snapshot: FileSnapshot, new_contents: Mapping[str, str]) -> LineChanges:
    total = LineChanges()
    for operation in operations:
        total = total + calculate_line_changes(operation, snapshot, new_contents)
    return total


__all__ = [
    "LineChanges",
    "calculate_line_changes",
    "count_line_changes",
    "lcs_length",
    "total_line_changes",
]
