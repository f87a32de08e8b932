"""Per-engine context threaded through every engine call."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .config import Config, STATE_DIRECTORY_NAME

LOGGER = logging.getLogger("patchwal")

# Ordering mirrors the configuration's ``core.log_level`` values.
_LEVEL_RANKS = {"silent": 0, "error": 1, "warn": 2, "info": 3, "debug": 4}


@dataclass(slots=True)
class EngineContext:
    """Project root, verbosity and memoised filesystem facts for one engine.

    Verbosity is filtered per instance; the shared logger level is never changed.
    """

    cwd: Path
    log_level: str = "info"
    logger: logging.Logger = field(default=LOGGER)
    state_dir_ensured: bool = False

    def __post_init__(self) -> None:
        self.cwd = Path(self.cwd).resolve()
        if self.log_level not in _LEVEL_RANKS:
            self.log_level = "info"

    @classmethod
    def from_config(cls, config: Config, cwd: Path | str) -> "EngineContext":
        return cls(cwd=Path(cwd), log_level=config.core.log_level)

    @property
    def state_dir(self) -> Path:
        return self.cwd / STATE_DIRECTORY_NAME

    def enabled(self, level: str) -> bool:
        return _LEVEL_RANKS[level] <= _LEVEL_RANKS[self.log_level]

    def debug(self, message: str, *args: object) -> None:
        if self.enabled("debug"):
            self.logger.debug(message, *args)

    def info(self, message: str, *args: object) -> None:
        if self.enabled("info"):
            self.logger.info(message, *args)

    def warn(self, message: str, *args: object) -> None:
        if self.enabled("warn"):
            self.logger.warning(message, *args)

    def error(self, message: str, *args: object) -> None:
        if self.enabled("error"):
            self.logger.error(message, *args)


__all__ = ["EngineContext"]
