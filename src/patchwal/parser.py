"""Turn raw LLM patch text into a validated :class:`ChangeSet`.

The envelope is a markdown document made of reasoning prose, fenced code
blocks annotated with a target path (and optionally a patch strategy), and a
trailing YAML control block carrying ``projectId`` and ``uuid``::

    I will rename the helper first.

    ```typescript // src/utils.ts new-unified
    --- src/utils.ts
    +++ src/utils.ts
    @@ ... @@
    ...
    ```

    ```yaml
    projectId: my-project
    uuid: 5e0f...
    ```

Parsing never raises for malformed input: every failure path logs at debug
level and yields ``None`` so that callers (the clipboard watcher above all)
can ignore text that is not a patch.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

import yaml
from pydantic import ValidationError as PydanticValidationError

from .errors import ParseError
from .schema import (
    ChangeSet,
    ControlBlock,
    DeleteOperation,
    PatchStrategy,
    RenameOperation,
    WriteOperation,
)

LOGGER = logging.getLogger(__name__)

CODE_BLOCK_START_MARKER = "// START"
CODE_BLOCK_END_MARKER = "// END"
DELETE_FILE_MARKER = "//TODO: delete this file"
RENAME_FILE_OPERATION = "rename-file"
SEARCH_BLOCK_START = "<<<<<<< SEARCH"
SEARCH_BLOCK_END = ">>>>>>> REPLACE"

_STRATEGY_KEYWORDS = {strategy.value: strategy for strategy in PatchStrategy}

_CODE_BLOCK_RE = re.compile(
    r"```(?:[\w+#.-]+)?(?:[ \t]*//[ \t]*(?P<comment>[^\n]*?)|[ \t]+(?P<plain>[^\n]*?))?[ \t]*\r?\n"
    r"(?:(?P<body>.*?)\r?\n)??```",
    re.DOTALL,
)
_YAML_BLOCK_RE = re.compile(r"```ya?ml[ \t]*\r?\n(?P<body>.*?)```", re.DOTALL)
_QUOTED_HEADER_RE = re.compile(r'^"(?P<path>[^"]+)"(?:\s+(?P<rest>.*))?$')
_YAML_LINE_RE = re.compile(r"^(?:[A-Za-z_][\w-]*\s*:.*|\s+\S.*|-\s.*|\s*)$")


@dataclass(slots=True)
class _ControlMatch:
    """Control block payload and the exact text span it occupied."""

    data: Mapping[str, Any]
    start: int
    end: int


def _normalise_newlines(text: str) -> str:
    return text.replace("\r\n", "\n")


def _load_control_mapping(payload: str) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(payload)
    except yaml.YAMLError as error:
        raise ParseError(f"Control block is not valid YAML: {error}") from error
    if not isinstance(data, Mapping):
        raise ParseError("Control block must be a YAML mapping.")
    return data


def _locate_unlabelled_trailing_fence(text: str) -> _ControlMatch | None:
    """Return the control block when the text ends with a bare ``` fence holding it."""
    stripped = text.rstrip()
    if not stripped.endswith("```"):
        return None
    closing = len(stripped) - 3
    opening = stripped.rfind("```", 0, closing)
    if opening == -1:
        return None
    header, newline, body = stripped[opening + 3 : closing].partition("\n")
    if header.strip() or not newline:
        return None
    try:
        data = _load_control_mapping(body)
    except ParseError:
        return None
    if "uuid" not in data or "projectId" not in data:
        return None
    return _ControlMatch(data, opening, len(stripped))


def _locate_control_block(text: str) -> _ControlMatch:
    """Find the trailing control block, fenced or anchored to the end of the text."""
    labelled = list(_YAML_BLOCK_RE.finditer(text))
    if labelled:
        match = labelled[-1]
        return _ControlMatch(_load_control_mapping(match.group("body")), match.start(), match.end())

    trailing = _locate_unlabelled_trailing_fence(text)
    if trailing is not None:
        return trailing

    # Unfenced: walk back from the end over lines that look like YAML.
    last_fence = text.rfind("```")
    tail_start = last_fence + 3 if last_fence != -1 else 0
    lines = text[tail_start:].split("\n")
    index = len(lines)
    while index > 0 and _YAML_LINE_RE.match(lines[index - 1]):
        index -= 1
    candidate = "\n".join(lines[index:]).strip()
    if not candidate:
        raise ParseError("No control block found.")
    start = tail_start + len("\n".join(lines[:index]))
    return _ControlMatch(_load_control_mapping(candidate), start, len(text))


def _extract_code_between_markers(content: str) -> str:
    start_index = content.find(CODE_BLOCK_START_MARKER)
    end_index = content.rfind(CODE_BLOCK_END_MARKER)
    if start_index == -1 or end_index == -1 or end_index <= start_index:
        return content.strip()
    return content[start_index + len(CODE_BLOCK_START_MARKER) : end_index].strip()


def is_multi_search_replace(content: str) -> bool:
    """Return True when ``content`` holds at least one complete SEARCH/REPLACE block.

    Markers only count at the start of a line, and a start marker needs a
    matching end marker after it.
    """
    seen_start = False
    for line in content.split("\n"):
        if line.startswith(SEARCH_BLOCK_START):
            seen_start = True
        elif seen_start and line.startswith(SEARCH_BLOCK_END):
            return True
    return False


def _parse_header(header: str) -> tuple[str, PatchStrategy | None] | None:
    """Split a fence header into ``(path, explicit strategy)``."""
    quoted = _QUOTED_HEADER_RE.match(header)
    if quoted:
        rest = (quoted.group("rest") or "").strip()
        if not rest:
            return quoted.group("path"), None
        strategy = _STRATEGY_KEYWORDS.get(rest)
        if strategy is None:
            LOGGER.debug("Ignoring block with unknown strategy %r after quoted path.", rest)
            return None
        return quoted.group("path"), strategy

    parts = header.split()
    if len(parts) > 1 and parts[-1] in _STRATEGY_KEYWORDS:
        return " ".join(parts[:-1]), _STRATEGY_KEYWORDS[parts[-1]]
    # An unrecognised trailing token stays part of the path.
    return header, None


def _build_rename(body: str) -> RenameOperation:
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as error:
        raise ParseError(f"rename-file block is not valid JSON: {error}") from error
    if not isinstance(payload, Mapping) or "from" not in payload or "to" not in payload:
        raise ParseError("rename-file block must provide 'from' and 'to'.")
    return RenameOperation.model_validate({"from": payload["from"], "to": payload["to"]})


def _parse(raw_text: str) -> ChangeSet:
    text = _normalise_newlines(raw_text)
    control_match = _locate_control_block(text)
    control = ControlBlock.model_validate(dict(control_match.data))

    remaining = (text[: control_match.start] + text[control_match.end :]).strip()

    operations: list[WriteOperation | DeleteOperation | RenameOperation] = []
    consumed: list[tuple[int, int]] = []

    for match in _CODE_BLOCK_RE.finditer(remaining):
        header = (match.group("comment") or match.group("plain") or "").strip()
        if not header:
            continue
        body = match.group("body") or ""

        if header == RENAME_FILE_OPERATION:
            operations.append(_build_rename(body))
            consumed.append(match.span())
            continue

        parsed_header = _parse_header(header)
        if parsed_header is None:
            continue
        path, strategy = parsed_header
        if not path:
            continue

        content = body.strip()
        if content == DELETE_FILE_MARKER:
            operations.append(DeleteOperation(path=path))
        else:
            clean = _extract_code_between_markers(content)
            if strategy is None:
                strategy = (
                    PatchStrategy.MULTI_SEARCH_REPLACE
                    if is_multi_search_replace(clean)
                    else PatchStrategy.REPLACE
                )
            operations.append(WriteOperation(path=path, content=clean, strategy=strategy))
        consumed.append(match.span())

    reasoning_parts: list[str] = []
    cursor = 0
    for start, end in consumed:
        reasoning_parts.append(remaining[cursor:start])
        cursor = end
    reasoning_parts.append(remaining[cursor:])
    reasoning = [line.strip() for line in "".join(reasoning_parts).split("\n") if line.strip()]

    if not operations:
        raise ParseError("No file operations found.")

    return ChangeSet(control=control, operations=operations, reasoning=reasoning)


def parse_change_set(raw_text: str) -> ChangeSet | None:
    """Parse ``raw_text`` into a :class:`ChangeSet`, or ``None`` when it is not a patch."""
    if not isinstance(raw_text, str) or not raw_text.strip():
        return None
    try:
        return _parse(raw_text)
    except ParseError as error:
        LOGGER.debug("Patch text rejected: %s", error)
    except PydanticValidationError as error:
        LOGGER.debug("Patch text failed validation: %s", error)
    return None


__all__ = [
    "CODE_BLOCK_END_MARKER",
    "CODE_BLOCK_START_MARKER",
    "DELETE_FILE_MARKER",
    "RENAME_FILE_OPERATION",
    "is_multi_search_replace",
    "parse_change_set",
]
