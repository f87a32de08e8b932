from __future__ import annotations

from pathlib import Path

import pytest

from patchwal.engine.executor import affected_paths, apply_operations, create_snapshot, restore_snapshot
from patchwal.errors import ApplyError, RollbackError
from patchwal.schema import DeleteOperation, PatchStrategy, RenameOperation, WriteOperation


def _write(root: Path, path: str, content: str) -> None:
    target = root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")


def test_snapshot_covers_exactly_the_touched_paths(tmp_path: Path) -> None:
    _write(tmp_path, "a.txt", "A")
    _write(tmp_path, "c.txt", "C")
    operations = [
        WriteOperation(path="a.txt", content="A2"),
        DeleteOperation(path="b.txt"),
        RenameOperation(from_path="c.txt", to_path="d/c.txt"),
        WriteOperation(path="a.txt", content="A3"),
    ]

    paths = affected_paths(operations)
    snapshot = create_snapshot(paths, tmp_path)

    assert paths == ["a.txt", "b.txt", "c.txt", "d/c.txt"]
    assert snapshot == {"a.txt": "A", "b.txt": None, "c.txt": "C", "d/c.txt": None}


def test_snapshot_preserves_crlf_bytes(tmp_path: Path) -> None:
    (tmp_path / "win.txt").write_bytes(b"one\r\ntwo\r\n")

    assert create_snapshot(["win.txt"], tmp_path) == {"win.txt": "one\r\ntwo\r\n"}


def test_operations_see_in_flight_state(tmp_path: Path) -> None:
    search_replace = "<<<<<<< SEARCH\nvalue = 1\n=======\nvalue = 2\n>>>>>>> REPLACE"
    operations = [
        WriteOperation(path="pkg/mod.py", content="value = 1\n"),
        WriteOperation(path="pkg/mod.py", content=search_replace, strategy=PatchStrategy.MULTI_SEARCH_REPLACE),
        RenameOperation(from_path="pkg/mod.py", to_path="pkg/renamed.py"),
    ]

    new_contents = apply_operations(operations, tmp_path)

    assert new_contents == {"pkg/renamed.py": "value = 2\n"}
    assert not (tmp_path / "pkg" / "mod.py").exists()
    assert (tmp_path / "pkg" / "renamed.py").read_text(encoding="utf-8") == "value = 2\n"


def test_delete_of_missing_file_is_not_an_error(tmp_path: Path) -> None:
    assert apply_operations([DeleteOperation(path="ghost.txt")], tmp_path) == {}


def test_search_replace_on_new_file_is_rejected(tmp_path: Path) -> None:
    operation = WriteOperation(
        path="new.py",
        content="<<<<<<< SEARCH\na\n=======\nb\n>>>>>>> REPLACE",
        strategy=PatchStrategy.MULTI_SEARCH_REPLACE,
    )

    with pytest.raises(ApplyError) as excinfo:
        apply_operations([operation], tmp_path)

    assert excinfo.value.completed == 0
    assert not (tmp_path / "new.py").exists()


def test_strategy_failure_reports_completed_operations(tmp_path: Path) -> None:
    _write(tmp_path, "b.txt", "keep\n")
    operations = [
        WriteOperation(path="a.txt", content="first"),
        WriteOperation(path="b.txt", content="@@ @@\n-missing line\n+x\n", strategy=PatchStrategy.NEW_UNIFIED),
    ]

    with pytest.raises(ApplyError) as excinfo:
        apply_operations(operations, tmp_path)

    assert excinfo.value.completed == 1
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "first"


def test_unknown_strategy_fails_closed(tmp_path: Path) -> None:
    operation = WriteOperation(path="a.txt", content="+x\n", strategy=PatchStrategy.NEW_UNIFIED)

    with pytest.raises(ApplyError):
        apply_operations([operation], tmp_path, strategies={})


def test_rename_of_missing_source_fails(tmp_path: Path) -> None:
    with pytest.raises(ApplyError):
        apply_operations([RenameOperation(from_path="nope.txt", to_path="yes.txt")], tmp_path)


def test_restore_snapshot_rewrites_and_prunes(tmp_path: Path) -> None:
    _write(tmp_path, "keep.txt", "original")
    snapshot = {"keep.txt": "original", "nested/deep/new.txt": None, "nested/sibling.txt": None}
    apply_operations(
        [
            WriteOperation(path="keep.txt", content="changed"),
            WriteOperation(path="nested/deep/new.txt", content="n"),
            WriteOperation(path="nested/sibling.txt", content="s"),
        ],
        tmp_path,
    )

    restore_snapshot(snapshot, tmp_path)

    assert (tmp_path / "keep.txt").read_text(encoding="utf-8") == "original"
    assert not (tmp_path / "nested").exists()
    assert tmp_path.exists()


def test_restore_snapshot_stops_at_non_empty_directory(tmp_path: Path) -> None:
    _write(tmp_path, "dir/existing.txt", "stay")
    _write(tmp_path, "dir/sub/new.txt", "temp")

    restore_snapshot({"dir/sub/new.txt": None}, tmp_path)

    assert not (tmp_path / "dir" / "sub").exists()
    assert (tmp_path / "dir" / "existing.txt").exists()


def test_restore_snapshot_collects_failures(tmp_path: Path) -> None:
    _write(tmp_path, "blocker", "a file where a directory is expected")

    with pytest.raises(RollbackError) as excinfo:
        restore_snapshot({"blocker/child.txt": "content", "ok.txt": "fine"}, tmp_path)

    assert list(excinfo.value.failures) == ["blocker/child.txt"]
    assert (tmp_path / "ok.txt").read_text(encoding="utf-8") == "fine"


def test_restore_snapshot_prunes_directories_that_were_already_empty(tmp_path: Path) -> None:
    (tmp_path / "outer" / "empty").mkdir(parents=True)
    _write(tmp_path, "outer/empty/new.txt", "created by the transaction")

    restore_snapshot({"outer/empty/new.txt": None}, tmp_path)

    assert not (tmp_path / "outer").exists()
    assert tmp_path.exists()
