from __future__ import annotations

from conftest import code_block, render_patch

from patchwal.engine.transaction import TransactionOptions, apply_change_set
from patchwal.engine.undo import list_history, undo_last
from patchwal.parser import parse_change_set


def _apply(project, content: str):
    change_set = parse_change_set(render_patch([code_block("a.txt", content, language="text")]))
    outcome = apply_change_set(project.config, change_set, TransactionOptions(cwd=project.root))
    assert outcome.status == "committed"
    return outcome


def test_undo_restores_latest_snapshot_and_moves_record(project) -> None:
    project.write("a.txt", "v1")
    _apply(project, "v2")
    latest = _apply(project, "v3")

    outcome = undo_last(project.ctx, yes=True)

    assert outcome.status == "undone"
    assert outcome.uuid == latest.uuid
    assert project.read("a.txt") == "v2"
    assert project.store.undone_path(latest.uuid).exists()
    assert not project.store.committed_path(latest.uuid).exists()


def test_second_undo_targets_previous_transaction(project) -> None:
    project.write("a.txt", "v1")
    first = _apply(project, "v2")
    _apply(project, "v3")

    undo_last(project.ctx, yes=True)
    outcome = undo_last(project.ctx, yes=True)

    assert outcome.uuid == first.uuid
    assert project.read("a.txt") == "v1"
    assert list_history(project.ctx) == []
    assert undo_last(project.ctx, yes=True).status == "nothing"


def test_undo_of_new_file_removes_it(project) -> None:
    change_set = parse_change_set(render_patch([code_block("pkg/new.txt", "hello", language="text")]))
    apply_change_set(project.config, change_set, TransactionOptions(cwd=project.root))

    undo_last(project.ctx, yes=True)

    assert not project.exists("pkg")


def test_undone_uuid_is_never_reprocessed(project) -> None:
    text = render_patch([code_block("a.txt", "v2", language="text")], uuid="undone-uuid")
    apply_change_set(project.config, parse_change_set(text), TransactionOptions(cwd=project.root))
    undo_last(project.ctx, yes=True)

    outcome = apply_change_set(project.config, parse_change_set(text), TransactionOptions(cwd=project.root))

    assert outcome.status == "skipped"
    assert not project.exists("a.txt")


def test_cancelled_undo_keeps_record(project) -> None:
    project.write("a.txt", "v1")
    latest = _apply(project, "v2")

    outcome = undo_last(project.ctx, confirm=lambda question: False)

    assert outcome.status == "cancelled"
    assert project.read("a.txt") == "v2"
    assert project.store.committed_path(latest.uuid).exists()
