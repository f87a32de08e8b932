from __future__ import annotations

from patchwal.engine.linestats import (
    LineChanges,
    calculate_line_changes,
    count_line_changes,
    lcs_length,
    total_line_changes,
)
from patchwal.schema import DeleteOperation, RenameOperation, WriteOperation


def test_lcs_length_is_symmetric() -> None:
    left = ["a", "b", "c", "d"]
    right = ["b", "d"]

    assert lcs_length(left, right) == 2
    assert lcs_length(right, left) == 2
    assert lcs_length([], left) == 0


def test_identical_content_has_no_changes() -> None:
    assert count_line_changes("a\nb\n", "a\nb\n") == LineChanges(0, 0)


def test_new_file_counts_every_line_added() -> None:
    assert count_line_changes(None, "one\ntwo\nthree\n") == LineChanges(added=3, removed=0)


def test_deleted_file_counts_every_line_removed() -> None:
    assert count_line_changes("one\ntwo\n", None) == LineChanges(added=0, removed=2)


def test_edit_counts_differences_only() -> None:
    assert count_line_changes("a\nb\nc\n", "a\nB\nc\nd\n") == LineChanges(added=2, removed=1)


def test_per_operation_statistics() -> None:
    snapshot = {"a.txt": "x\n", "gone.txt": "1\n2\n", "from.txt": "k\n", "to.txt": None}
    new_contents = {"a.txt": "x\ny\n", "to.txt": "k\n"}

    assert calculate_line_changes(WriteOperation(path="a.txt", content="x\ny\n"), snapshot, new_contents) == LineChanges(1, 0)
    assert calculate_line_changes(DeleteOperation(path="gone.txt"), snapshot, new_contents) == LineChanges(0, 2)
    rename = RenameOperation(from_path="from.txt", to_path="to.txt")
    assert calculate_line_changes(rename, snapshot, new_contents) == LineChanges(0, 0)

    operations = [WriteOperation(path="a.txt", content="x\ny\n"), DeleteOperation(path="gone.txt"), rename]
    assert total_line_changes(operations, snapshot, new_contents) == LineChanges(1, 2)
