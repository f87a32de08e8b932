from __future__ import annotations

import pytest

from patchwal.schema import PatchStrategy
from patchwal.tools.strategies import (
    STRATEGIES,
    apply_multi_search_replace,
    apply_new_unified,
    get_strategy,
)

ORIGINAL = "def a():\n    return 1\n\ndef b():\n    return 2\n"


def test_new_unified_without_line_numbers() -> None:
    diff = "--- mod.py\n+++ mod.py\n@@ ... @@\n def b():\n-    return 2\n+    return 3\n"

    result = apply_new_unified(ORIGINAL, diff)

    assert result.success
    assert result.content == "def a():\n    return 1\n\ndef b():\n    return 3\n"


def test_new_unified_with_line_numbers() -> None:
    result = apply_new_unified("a\nc\n", "@@ -1,2 +1,2 @@\n-a\n+b\n c\n")

    assert result.success
    assert result.content == "b\nc\n"


def test_new_unified_tolerates_lost_indentation() -> None:
    diff = "@@ @@\n def b():\n-return 2\n+    return 3\n"

    result = apply_new_unified(ORIGINAL, diff)

    assert result.success
    assert result.content.endswith("def b():\n    return 3\n")


def test_new_unified_applies_hunks_in_order() -> None:
    diff = "@@ @@\n def a():\n-    return 1\n+    return 10\n@@ @@\n def b():\n-    return 2\n+    return 20\n"

    result = apply_new_unified(ORIGINAL, diff)

    assert result.success
    assert "return 10" in result.content
    assert "return 20" in result.content


def test_new_unified_creates_content_for_empty_file() -> None:
    result = apply_new_unified("", "+line one\n+line two\n")

    assert result.success
    assert result.content == "line one\nline two\n"


def test_new_unified_reports_unmatched_hunk() -> None:
    result = apply_new_unified(ORIGINAL, "@@ @@\n-totally different content here\n+x\n")

    assert not result.success
    assert "Hunk #1" in (result.error or "")


def test_new_unified_without_hunks_fails() -> None:
    assert not apply_new_unified(ORIGINAL, "--- a\n+++ a\n").success


def test_multi_search_replace_applies_blocks() -> None:
    diff = (
        "<<<<<<< SEARCH\n"
        ":start_line:2\n"
        "-------\n"
        "b = 2\n"
        "=======\n"
        "b = 20\n"
        ">>>>>>> REPLACE\n"
        "<<<<<<< SEARCH\n"
        "c = 3\n"
        "=======\n"
        "c = 30\n"
        ">>>>>>> REPLACE\n"
    )

    result = apply_multi_search_replace("a = 1\nb = 2\nc = 3\n", diff)

    assert result.success
    assert result.content == "a = 1\nb = 20\nc = 30\n"


def test_multi_search_replace_tolerates_trailing_whitespace() -> None:
    diff = "<<<<<<< SEARCH\nb = 2\n=======\nb = 3\n>>>>>>> REPLACE"

    result = apply_multi_search_replace("a = 1\nb = 2   \n", diff)

    assert result.success
    assert result.content == "a = 1\nb = 3\n"


def test_multi_search_replace_missing_search_text() -> None:
    diff = "<<<<<<< SEARCH\nnot here\n=======\nx\n>>>>>>> REPLACE"

    result = apply_multi_search_replace("a = 1\n", diff)

    assert not result.success
    assert "not found" in (result.error or "")


def test_multi_search_replace_unterminated_block() -> None:
    result = apply_multi_search_replace("a = 1\n", "<<<<<<< SEARCH\na = 1\n=======\na = 2\n")

    assert not result.success
    assert "REPLACE" in (result.error or "")


def test_strategy_table_fails_closed() -> None:
    assert get_strategy("new-unified") is apply_new_unified
    assert set(STRATEGIES) == {PatchStrategy.NEW_UNIFIED, PatchStrategy.MULTI_SEARCH_REPLACE}
    with pytest.raises(KeyError):
        get_strategy(PatchStrategy.REPLACE)
    with pytest.raises(KeyError):
        get_strategy(PatchStrategy.NEW_UNIFIED, table={})
