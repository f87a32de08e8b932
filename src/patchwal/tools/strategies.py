"""Patch-strategy services that turn a diff payload into final file content.

Each service implements ``apply_diff(original_content, diff_content)`` and
returns a :class:`DiffResult`; none of them raise for a payload that does not
apply. The executor looks services up through :data:`STRATEGIES`, a capability
table keyed by strategy name, and fails closed on a missing key.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from typing import Callable, Mapping

from ..schema import PatchStrategy

_HUNK_HEADER = re.compile(
    r"^@@\s*(?:-(?P<old_start>\d+)(?:,(?P<old_count>\d+))?\s+\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))?)?.*?@@"
)
_FUZZY_THRESHOLD = 0.95

DELIM_SEARCH = "<<<<<<< SEARCH"
DELIM_DIVIDER = "-------"
DELIM_SEP = "======="
DELIM_REPLACE = ">>>>>>> REPLACE"
_LINE_HINT = re.compile(r"^:(?P<kind>start_line|end_line):\s*(?P<value>\d*)\s*$")


@dataclass(slots=True)
class DiffResult:
    """Outcome of a patch-strategy service call."""

    success: bool
    content: str = ""
    error: str | None = None

    @classmethod
    def ok(cls, content: str) -> "DiffResult":
        return cls(success=True, content=content)

    @classmethod
    def failed(cls, error: str) -> "DiffResult":
        return cls(success=False, error=error)


ApplyDiff = Callable[[str, str], DiffResult]


def _split_lines(content: str) -> tuple[list[str], bool]:
    """Split text into lines, remembering whether it ended with a newline."""
    normalised = content.replace("\r\n", "\n")
    if not normalised:
        return [], True
    trailing = normalised.endswith("\n")
    lines = normalised.split("\n")
    if trailing:
        lines.pop()
    return lines, trailing


def _join_lines(lines: list[str], trailing_newline: bool) -> str:
    if not lines:
        return ""
    text = "\n".join(lines)
    return text + "\n" if trailing_newline else text


# ---------------------------------------------------------------- new-unified


@dataclass(slots=True)
class _Hunk:
    old_start: int | None = None
    old_lines: list[str] = field(default_factory=list)
    new_lines: list[str] = field(default_factory=list)

    @property
    def is_pure_addition(self) -> bool:
        return not self.old_lines


def _parse_hunks(diff: str) -> list[_Hunk]:
    lines = diff.replace("\r\n", "\n").split("\n")
    hunks: list[_Hunk] = []
    current: _Hunk | None = None
    index = 0
    while index < len(lines):
        line = lines[index]
        following = lines[index + 1] if index + 1 < len(lines) else ""
        if line.startswith("--- ") and following.startswith("+++ "):
            current = None
            index += 2
            continue
        if line.startswith(("diff --git ", "index ")) and current is None:
            index += 1
            continue
        if line.startswith("@@"):
            match = _HUNK_HEADER.match(line)
            current = _Hunk()
            if match and match.group("old_start") is not None:
                current.old_start = int(match.group("old_start"))
            hunks.append(current)
            index += 1
            continue
        if current is None:
            if not line.strip():
                index += 1
                continue
            # Payloads without any @@ header form a single hunk.
            current = _Hunk()
            hunks.append(current)
        if line.startswith("\\"):
            pass
        elif line.startswith("+"):
            current.new_lines.append(line[1:])
        elif line.startswith("-"):
            current.old_lines.append(line[1:])
        elif line.startswith(" "):
            current.old_lines.append(line[1:])
            current.new_lines.append(line[1:])
        elif line == "":
            current.old_lines.append("")
            current.new_lines.append("")
        else:
            # Context line that lost its leading space.
            current.old_lines.append(line)
            current.new_lines.append(line)
        index += 1

    for hunk in hunks:
        # Trailing blank context produced by the final newline of the payload.
        while hunk.old_lines and hunk.new_lines and hunk.old_lines[-1] == "" and hunk.new_lines[-1] == "":
            hunk.old_lines.pop()
            hunk.new_lines.pop()
    return [hunk for hunk in hunks if hunk.old_lines or hunk.new_lines]


def _find_exact(lines: list[str], target: list[str], start: int, key: Callable[[str], str]) -> int | None:
    wanted = [key(line) for line in target]
    size = len(target)
    for offset in range(start, len(lines) - size + 1):
        if [key(line) for line in lines[offset : offset + size]] == wanted:
            return offset
    return None


def _find_fuzzy(lines: list[str], target: list[str]) -> int | None:
    size = len(target)
    needle = "\n".join(line.strip() for line in target)
    best_offset: int | None = None
    best_ratio = 0.0
    for offset in range(0, len(lines) - size + 1):
        window = "\n".join(line.strip() for line in lines[offset : offset + size])
        ratio = difflib.SequenceMatcher(None, window, needle).ratio()
        if ratio > best_ratio:
            best_ratio, best_offset = ratio, offset
    if best_ratio >= _FUZZY_THRESHOLD:
        return best_offset
    return None


def _locate_hunk(lines: list[str], hunk: _Hunk, cursor: int) -> int | None:
    for key in (lambda value: value, str.rstrip, str.strip):
        for start in (cursor, 0):
            position = _find_exact(lines, hunk.old_lines, start, key)
            if position is not None:
                return position
    return _find_fuzzy(lines, hunk.old_lines)


def apply_new_unified(original_content: str, diff_content: str) -> DiffResult:
    """Apply a unified diff whose hunks may omit or misstate line numbers."""
    hunks = _parse_hunks(diff_content)
    if not hunks:
        return DiffResult.failed("Diff contains no hunks.")

    lines, trailing_newline = _split_lines(original_content)
    cursor = 0
    for number, hunk in enumerate(hunks, start=1):
        if hunk.is_pure_addition:
            if hunk.old_start is not None:
                position = min(max(hunk.old_start, 0), len(lines))
            else:
                position = len(lines)
        else:
            position = _locate_hunk(lines, hunk, cursor)
            if position is None:
                return DiffResult.failed(f"Hunk #{number} does not match the original content.")
        lines[position : position + len(hunk.old_lines)] = hunk.new_lines
        cursor = position + len(hunk.new_lines)

    return DiffResult.ok(_join_lines(lines, trailing_newline))


# ------------------------------------------------------- multi-search-replace


@dataclass(slots=True)
class _SearchReplaceBlock:
    search: list[str]
    replace: list[str]
    start_line: int | None = None


def _parse_search_replace_blocks(diff: str) -> list[_SearchReplaceBlock]:
    lines = diff.replace("\r\n", "\n").split("\n")
    blocks: list[_SearchReplaceBlock] = []
    index = 0
    while index < len(lines):
        if lines[index].strip() != DELIM_SEARCH:
            index += 1
            continue
        index += 1
        start_line: int | None = None
        while index < len(lines):
            hint = _LINE_HINT.match(lines[index].strip())
            if hint is None:
                break
            if hint.group("kind") == "start_line" and hint.group("value"):
                start_line = int(hint.group("value"))
            index += 1
        if index < len(lines) and lines[index].strip() == DELIM_DIVIDER:
            index += 1

        search: list[str] = []
        while index < len(lines) and lines[index].strip() != DELIM_SEP:
            search.append(lines[index])
            index += 1
        if index >= len(lines):
            raise ValueError("SEARCH block is missing its '=======' separator.")
        index += 1

        replace: list[str] = []
        while index < len(lines) and lines[index].strip() != DELIM_REPLACE:
            replace.append(lines[index])
            index += 1
        if index >= len(lines):
            raise ValueError("SEARCH block is missing its '>>>>>>> REPLACE' terminator.")
        index += 1
        blocks.append(_SearchReplaceBlock(search=search, replace=replace, start_line=start_line))
    return blocks


def apply_multi_search_replace(original_content: str, diff_content: str) -> DiffResult:
    """Apply one or more SEARCH/REPLACE blocks in order."""
    try:
        blocks = _parse_search_replace_blocks(diff_content)
    except ValueError as error:
        return DiffResult.failed(str(error))
    if not blocks:
        return DiffResult.failed("No SEARCH/REPLACE blocks found.")

    lines, trailing_newline = _split_lines(original_content)
    for number, block in enumerate(blocks, start=1):
        if not any(line.strip() for line in block.search):
            return DiffResult.failed(f"SEARCH block #{number} is empty.")
        start = max((block.start_line or 1) - 1, 0)
        position = None
        for key in (lambda value: value, str.rstrip):
            for offset in (start, 0):
                position = _find_exact(lines, block.search, offset, key)
                if position is not None:
                    break
            if position is not None:
                break
        if position is None:
            return DiffResult.failed(f"SEARCH block #{number} was not found in the file.")
        lines[position : position + len(block.search)] = block.replace

    return DiffResult.ok(_join_lines(lines, trailing_newline))


STRATEGIES: Mapping[PatchStrategy, ApplyDiff] = {
    PatchStrategy.NEW_UNIFIED: apply_new_unified,
    PatchStrategy.MULTI_SEARCH_REPLACE: apply_multi_search_replace,
}


def get_strategy(
    strategy: PatchStrategy | str,
    table: Mapping[PatchStrategy, ApplyDiff] | None = None,
) -> ApplyDiff:
    """Return the service for ``strategy``; raise ``KeyError`` for unknown names."""
    registry = STRATEGIES if table is None else table
    key = PatchStrategy(strategy) if not isinstance(strategy, PatchStrategy) else strategy
    return registry[key]


__all__ = [
    "ApplyDiff",
    "DiffResult",
    "STRATEGIES",
    "apply_multi_search_replace",
    "apply_new_unified",
    "get_strategy",
]
