"""Typed records exchanged between the parser, the engine and the WAL."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


_RECORD_ID = re.compile(r"[A-Za-z0-9._-]+")


def ensure_record_id(value: str) -> str:
    """Reject transaction ids that cannot be used verbatim as a WAL file name."""
    if not _RECORD_ID.fullmatch(value) or value.startswith(".") or ".." in value:
        raise ValueError(f"uuid must only contain letters, digits, '.', '_' or '-': {value!r}")
    return value


def ensure_relative_path(value: str) -> str:
    """Reject absolute paths and paths that climb out of the project root."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("path must not be empty")
    if PurePosixPath(candidate).is_absolute() or PureWindowsPath(candidate).is_absolute():
        raise ValueError(f"path must be project-relative: {candidate}")
    depth = 0
    for part in PurePosixPath(candidate.replace("\\", "/")).parts:
        if part == "..":
            depth -= 1
        elif part not in ("", "."):
            depth += 1
        if depth < 0:
            raise ValueError(f"path escapes the project root: {candidate}")
    return candidate


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False, populate_by_name=True)


class PatchStrategy(str, Enum):
    """Algorithms that turn a write payload into final file content."""

    REPLACE = "replace"
    NEW_UNIFIED = "new-unified"
    MULTI_SEARCH_REPLACE = "multi-search-replace"


class TransactionStatus(str, Enum):
    """Lifecycle location of a WAL record."""

    PENDING = "pending"
    COMMITTED = "committed"
    UNDONE = "undone"


class WriteOperation(RecordModel):
    """Create or modify ``path``."""

    type: Literal["write"] = "write"
    path: str
    content: str
    strategy: PatchStrategy = PatchStrategy.REPLACE

    check_path = field_validator("path")(ensure_relative_path)


class DeleteOperation(RecordModel):
    """Remove ``path``."""

    type: Literal["delete"] = "delete"
    path: str

    check_path = field_validator("path")(ensure_relative_path)


class RenameOperation(RecordModel):
    """Move ``from`` to ``to``."""

    type: Literal["rename"] = "rename"
    from_path: str = Field(alias="from")
    to_path: str = Field(alias="to")

    check_paths = field_validator("from_path", "to_path")(ensure_relative_path)


FileOperation = Annotated[
    Union[WriteOperation, DeleteOperation, RenameOperation],
    Field(discriminator="type"),
]

FileSnapshot = Dict[str, Optional[str]]


def operation_paths(operation: WriteOperation | DeleteOperation | RenameOperation) -> tuple[str, ...]:
    """Return every project-relative path an operation touches."""
    if operation.type == "rename":
        return (operation.from_path, operation.to_path)
    if operation.type in ("write", "delete"):
        return (operation.path,)
    raise ValueError(f"Unknown operation type: {operation.type}")


class ControlBlock(BaseModel):
    """Metadata block trailing an LLM response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    uuid: str
    project_id: str = Field(alias="projectId")
    git_commit_msg: Optional[str] = Field(default=None, alias="gitCommitMsg")
    prompt_summary: Optional[str] = Field(default=None, alias="promptSummary")
    change_summary: List[Any] = Field(default_factory=list, alias="changeSummary")
    reverts_uuid: Optional[str] = Field(default=None, alias="revertsUuid")

    @field_validator("uuid", "project_id", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        if value is None:
            raise ValueError("field is required")
        text = str(value).strip()
        if not text:
            raise ValueError("field must not be empty")
        return text

    @field_validator("uuid")
    @classmethod
    def _check_uuid(cls, value: str) -> str:
        return ensure_record_id(value)

    @field_validator("change_summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        return [value]


class ChangeSet(RecordModel):
    """Parsed patch: control metadata, ordered operations and reasoning."""

    control: ControlBlock
    operations: List[FileOperation] = Field(min_length=1)
    reasoning: List[str] = Field(default_factory=list)


class StateFile(RecordModel):
    """WAL record persisted for every transaction."""

    uuid: str
    project_id: str
    created_at: datetime = Field(default_factory=utc_now)
    reasoning: List[str] = Field(default_factory=list)
    operations: List[FileOperation] = Field(default_factory=list)
    snapshot: FileSnapshot = Field(default_factory=dict)
    approved: bool = False
    lines_added: Optional[int] = None
    lines_removed: Optional[int] = None
    git_commit_msg: Optional[str] = None
    prompt_summary: Optional[str] = None
    reverts_uuid: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING

    check_uuid = field_validator("uuid")(ensure_record_id)

    @model_validator(mode="after")
    def _snapshot_covers_operations(self) -> "StateFile":
        missing = [
            path
            for operation in self.operations
            for path in operation_paths(operation)
            if path not in self.snapshot
        ]
        if missing:
            raise ValueError(f"snapshot is missing paths: {', '.join(sorted(set(missing)))}")
        return self

    @property
    def is_revert(self) -> bool:
        return self.reverts_uuid is not None

    def to_record(self) -> dict[str, Any]:
        """Return a YAML-friendly mapping of the record."""
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "ChangeSet",
    "ControlBlock",
    "DeleteOperation",
    "FileOperation",
    "FileSnapshot",
    "PatchStrategy",
    "RenameOperation",
    "StateFile",
    "TransactionStatus",
    "WriteOperation",
    "ensure_record_id",
    "ensure_relative_path",
    "operation_paths",
    "utc_now",
]
