from __future__ import annotations

import sys
import uuid as uuid_lib
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from patchwal.config import Config, create_config  # noqa: E402
from patchwal.context import EngineContext  # noqa: E402
from patchwal.engine.state import StateStore  # noqa: E402

PROJECT_ID = "demo-project"


def code_block(header: str, body: str, language: str = "python") -> str:
    """Render a fenced block annotated with ``header`` after ``//``."""

    return f"```{language} // {header}\n{body}\n```"


def render_patch(
    blocks: Sequence[str],
    *,
    project_id: str = PROJECT_ID,
    uuid: str | None = None,
    reasoning: str = "Updating files.",
    extra_control: str = "",
) -> str:
    """Assemble reasoning, code blocks and a trailing YAML control block."""

    control = f"projectId: {project_id}\nuuid: {uuid or uuid_lib.uuid4()}\n{extra_control}"
    parts = [reasoning, *blocks, f"```yaml\n{control.rstrip()}\n```"]
    return "\n\n".join(parts) + "\n"


@dataclass(slots=True)
class Project:
    """Temporary project directory with a written configuration."""

    root: Path
    config: Config

    @property
    def ctx(self) -> EngineContext:
        return EngineContext.from_config(self.config, self.root)

    @property
    def store(self) -> StateStore:
        return StateStore(self.ctx)

    def write(self, path: str, content: str) -> Path:
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return target

    def read(self, path: str) -> str:
        return (self.root / path).read_text(encoding="utf-8")

    def exists(self, path: str) -> bool:
        return (self.root / path).exists()


@pytest.fixture()
def project(tmp_path: Path) -> Project:
    """Create a project with notifications disabled and auto approval."""

    root = tmp_path / "project"
    root.mkdir()
    config = create_config(
        PROJECT_ID,
        root,
        core={"log_level": "debug", "enable_notifications": False},
    )
    return Project(root=root.resolve(), config=config)
