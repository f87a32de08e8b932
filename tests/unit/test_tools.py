from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest

from patchwal import cli
from patchwal.config import create_config, get_project_id, load_config
from patchwal.context import EngineContext
from patchwal.errors import ConfigError
from patchwal.tools.clipboard import ClipboardError, ClipboardWatcher
from patchwal.tools.fs import remove_empty_parent_directories
from patchwal.tools.shell import EXIT_COMMAND_NOT_FOUND, get_error_count, run_command
from patchwal.tools.vcs import GitError, GitRepository, branch_name_for

PYTHON = f'"{sys.executable}"'


def test_run_command_captures_output(tmp_path: Path) -> None:
    result = run_command(f"{PYTHON} -c \"print('hello')\"", tmp_path)

    assert result.ok
    assert result.stdout.strip() == "hello"


def test_run_command_empty_and_missing_executable(tmp_path: Path) -> None:
    assert run_command("   ", tmp_path).exit_code == 0

    missing = run_command("definitely-not-a-real-binary --flag", tmp_path)

    assert missing.exit_code == EXIT_COMMAND_NOT_FOUND
    assert "definitely-not-a-real-binary" in missing.short_message()


def test_get_error_count_from_command_output(tmp_path: Path) -> None:
    script = "import sys; print('a.py:1 error: bad'); print('b.py:2 Error: worse'); sys.exit(1)"
    noisy = f'{PYTHON} -c "{script}"'
    silent_failure = f'{PYTHON} -c "import sys; sys.exit(2)"'

    assert get_error_count("", tmp_path) == 0
    assert get_error_count(f'{PYTHON} -c "pass"', tmp_path) == 0
    assert get_error_count(noisy, tmp_path) == 2
    assert get_error_count(silent_failure, tmp_path) == 1


def test_libcst_linter_counts_unparseable_python_files(tmp_path: Path) -> None:
    (tmp_path / "good.py").write_text("x = 1\n", encoding="utf-8")
    (tmp_path / "bad.py").write_text("def f(:\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("def f(:\n", encoding="utf-8")

    count = get_error_count("libcst", tmp_path, ["good.py", "bad.py", "notes.txt", "gone.py"])

    assert count == 1


def test_branch_name_from_commit_message() -> None:
    name = branch_name_for("relay/", "gitCommitMsg", uuid="u-1", git_commit_msg="feat: Add Login  page!")

    assert name == "relay/feat-add-login-page"
    assert branch_name_for("relay/", "gitCommitMsg", uuid="u-1", git_commit_msg=None) == "relay/u-1"
    assert branch_name_for("relay/", "uuid", uuid="u-1", git_commit_msg="feat: x") == "relay/u-1"


def test_remove_empty_parent_directories_stops_at_content(tmp_path: Path) -> None:
    (tmp_path / "a" / "b" / "c").mkdir(parents=True)
    (tmp_path / "a" / "keep.txt").write_text("k", encoding="utf-8")

    remove_empty_parent_directories(tmp_path / "a" / "b" / "c", tmp_path)

    assert not (tmp_path / "a" / "b").exists()
    assert (tmp_path / "a" / "keep.txt").exists()


def test_clipboard_watcher_delivers_each_new_value_once() -> None:
    values = iter(["", "patch one", "patch one", "patch two"])
    received: list[str] = []
    watcher = ClipboardWatcher(10, received.append, reader=lambda: next(values))

    results = [watcher.tick() for _ in range(4)]

    assert results == [False, True, False, True]
    assert received == ["patch one", "patch two"]


def test_clipboard_watcher_survives_read_failures(caplog: pytest.LogCaptureFixture) -> None:
    def broken() -> str:
        raise ClipboardError("no backend")

    watcher = ClipboardWatcher(10, lambda content: None, reader=broken)

    with caplog.at_level(logging.WARNING):
        assert watcher.tick() is False
    assert "no backend" in caplog.text


def test_context_filters_by_level(caplog: pytest.LogCaptureFixture, tmp_path: Path) -> None:
    ctx = EngineContext(cwd=tmp_path, log_level="warn", logger=logging.getLogger("tests.ctx"))

    with caplog.at_level(logging.DEBUG, logger="tests.ctx"):
        ctx.info("hidden %s", "info")
        ctx.warn("shown %s", "warning")

    assert "hidden info" not in caplog.text
    assert "shown warning" in caplog.text


def test_unknown_log_level_falls_back_to_info(tmp_path: Path) -> None:
    assert EngineContext(cwd=tmp_path, log_level="loud").log_level == "info"


def test_project_id_prefers_pyproject_name(tmp_path: Path) -> None:
    assert get_project_id(tmp_path) == tmp_path.name

    (tmp_path / "pyproject.toml").write_text('[project]\nname = "shop"\n', encoding="utf-8")

    assert get_project_id(tmp_path) == "shop"


def test_config_round_trip_and_errors(tmp_path: Path) -> None:
    assert load_config(tmp_path) is None

    create_config("shop", tmp_path, patch={"min_file_changes": 2})
    loaded = load_config(tmp_path)

    assert loaded is not None
    assert loaded.project_id == "shop"
    assert loaded.patch.min_file_changes == 2

    (tmp_path / "patchwal.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_shutdown_gives_up_on_a_blocked_callback() -> None:
    entered = threading.Event()
    release = threading.Event()

    def blocking(content: str) -> None:
        entered.set()
        release.wait(5)

    watcher = ClipboardWatcher(10, blocking, reader=lambda: "patch")
    watcher.start()
    assert entered.wait(5)

    started = time.monotonic()
    cli.shutdown_watcher(watcher, timeout=0.1)
    elapsed = time.monotonic() - started

    assert elapsed < 2
    assert watcher.running
    release.set()
    watcher.stop(5)
    assert not watcher.running


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_git_branch_and_commit(tmp_path: Path) -> None:
    for args in (
        ["init", "-q"],
        ["config", "user.email", "dev@example.com"],
        ["config", "user.name", "Dev"],
    ):
        subprocess.run(["git", *args], cwd=tmp_path, check=True, capture_output=True)
    (tmp_path / "a.txt").write_text("one\n", encoding="utf-8")
    repo = GitRepository.discover(tmp_path)

    first = repo.commit_all("feat: first")
    assert first is not None and len(first) == 40
    assert repo.commit_all("feat: nothing new") is None

    assert repo.create_branch("relay/feature") == "relay/feature"
    assert repo.create_branch("relay/feature") == "relay/feature"
    head = subprocess.run(
        ["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=tmp_path, capture_output=True, text=True, check=True
    )
    assert head.stdout.strip() == "relay/feature"


def test_discover_outside_repository_raises(tmp_path: Path) -> None:
    with pytest.raises(GitError):
        GitRepository.discover(tmp_path)
