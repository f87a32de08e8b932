"""Project configuration stored as YAML next to the managed project."""

from __future__ import annotations

import copy
import logging
import re
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigError

DEFAULT_CONFIG_NAME = "patchwal.yaml"
STATE_DIRECTORY_NAME = ".relay"
GITIGNORE_FILE_NAME = ".gitignore"

LOGGER = logging.getLogger(__name__)

LogLevelName = Literal["silent", "error", "warn", "info", "debug"]


class ApprovalMode(str, Enum):
    """How the approval gate treats a successfully applied transaction."""

    AUTO = "auto"
    MANUAL = "manual"


class SectionModel(BaseModel):
    """Base model for configuration sections."""

    model_config = ConfigDict(extra="forbid")


class CoreSettings(SectionModel):
    log_level: LogLevelName = "info"
    enable_notifications: bool = True
    watch_config: bool = True


class WatcherSettings(SectionModel):
    clipboard_poll_interval: int = Field(default=2000, ge=50)
    preferred_strategy: Literal["auto", "replace", "new-unified", "multi-search-replace"] = "auto"


class PatchSettings(SectionModel):
    approval_mode: ApprovalMode = ApprovalMode.AUTO
    approval_on_error_count: int = Field(default=0, ge=0)
    linter: str = ""
    pre_command: str = ""
    post_command: str = ""
    min_file_changes: int = Field(default=0, ge=0)
    max_file_changes: int = Field(default=0, ge=0)
    approval_timeout: float = Field(default=30.0, gt=0)


class GitSettings(SectionModel):
    auto_git_branch: bool = False
    git_branch_prefix: str = "relay/"
    git_branch_template: Literal["gitCommitMsg", "uuid"] = "gitCommitMsg"


class Config(SectionModel):
    """Validated project configuration."""

    project_id: str = Field(min_length=1)
    core: CoreSettings = Field(default_factory=CoreSettings)
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    patch: PatchSettings = Field(default_factory=PatchSettings)
    git: GitSettings = Field(default_factory=GitSettings)


DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project_id": "",
    "core": {
        "log_level": "info",
        "enable_notifications": True,
        "watch_config": True,
    },
    "watcher": {
        "clipboard_poll_interval": 2000,
        "preferred_strategy": "auto",
    },
    "patch": {
        "approval_mode": "auto",
        "approval_on_error_count": 0,
        "linter": "",
        "pre_command": "",
        "post_command": "",
        "min_file_changes": 0,
        "max_file_changes": 0,
        "approval_timeout": 30,
    },
    "git": {
        "auto_git_branch": False,
        "git_branch_prefix": "relay/",
        "git_branch_template": "gitCommitMsg",
    },
}


def config_path_for(cwd: Path | str) -> Path:
    return Path(cwd) / DEFAULT_CONFIG_NAME


def state_directory_for(cwd: Path | str) -> Path:
    return Path(cwd).resolve() / STATE_DIRECTORY_NAME


def load_config(cwd: Path | str) -> Config | None:
    """Load ``patchwal.yaml`` from ``cwd``; ``None`` when the file is missing."""
    config_path = config_path_for(cwd)
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        return None
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse {config_path.name}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path.name} must be a mapping at the top level.")

    try:
        return Config.model_validate(data)
    except PydanticValidationError as error:
        raise ConfigError(f"Invalid configuration in {config_path.name}: {error}") from error


def write_config(cwd: Path | str, config: Config) -> Path:
    """Persist configuration data to disk with stable formatting."""
    config_path = config_path_for(cwd)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.model_dump(mode="json"), handle, sort_keys=False)
    return config_path


def create_config(project_id: str, cwd: Path | str, **overrides: Any) -> Config:
    """Build a configuration from the default template and write it to ``cwd``."""
    data = copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)
    data["project_id"] = project_id
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(data.get(section), dict):
            data[section].update(values)
        else:
            data[section] = values
    config = Config.model_validate(data)
    write_config(cwd, config)
    return config


def get_project_id(cwd: Path | str) -> str:
    """Derive a project id from ``pyproject.toml`` or fall back to the directory name."""
    root = Path(cwd).resolve()
    pyproject = root / "pyproject.toml"
    try:
        with pyproject.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError:
        payload = {}
    except tomllib.TOMLDecodeError as error:
        LOGGER.debug("Ignoring unreadable pyproject.toml: %s", error)
        payload = {}

    project_section = payload.get("project")
    if isinstance(project_section, dict):
        name = project_section.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()

    fallback = re.sub(r"\s+", "-", root.name.strip())
    return fallback or "project"


__all__ = [
    "ApprovalMode",
    "Config",
    "CoreSettings",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "GITIGNORE_FILE_NAME",
    "GitSettings",
    "PatchSettings",
    "STATE_DIRECTORY_NAME",
    "WatcherSettings",
    "create_config",
    "get_project_id",
    "load_config",
    "state_directory_for",
    "write_config",
]
