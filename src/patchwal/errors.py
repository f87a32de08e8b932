"""Error taxonomy shared by the parser, the engine and the CLI."""

from __future__ import annotations

from typing import Any, Mapping


class PatchwalError(RuntimeError):
    """Base error carrying an optional structured ``details`` payload."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ConfigError(PatchwalError):
    """Raised when the project configuration is missing or invalid."""


class ParseError(PatchwalError):
    """Raised internally when patch text is malformed or incomplete."""


class ValidationError(PatchwalError):
    """Raised when a change-set must be skipped before any mutation."""


class ApplyError(PatchwalError):
    """Raised when an operation, hook or strategy fails during the apply phase."""

    def __init__(
        self,
        message: str,
        *,
        completed: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.completed = completed


class RollbackError(PatchwalError):
    """Raised when restoring a snapshot fails for one or more files."""

    def __init__(self, message: str, *, failures: Mapping[str, str] | None = None) -> None:
        super().__init__(message, details={"failures": dict(failures or {})})
        self.failures: dict[str, str] = dict(failures or {})


class StateIOError(PatchwalError):
    """Raised when a WAL record cannot be moved between lifecycle locations."""


__all__ = [
    "ApplyError",
    "ConfigError",
    "ParseError",
    "PatchwalError",
    "RollbackError",
    "StateIOError",
    "ValidationError",
]
