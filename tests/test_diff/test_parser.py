"""Tests for unified-diff canonicalization."""

from __future__ import annotations

from review_router.constants import FileStatus
from review_router.diff.models import CanonicalDiff, FileChange
from review_router.diff.parser import (
    canonicalize_diff,
    changes_from_diff,
    normalize_diff_path,
    parse_hunks,
    split_unified_diff,
)
from review_router.results import Err, Ok

TWO_HUNKS = """\
@@ -1,3 +1,3 @@
 a
-b
+B
 c
@@ -10,2 +10,3 @@
 x
+y
 z
\\ No newline at end of file
"""

BINARY_DIFF = """\
diff --git a/logo.png b/logo.png
new file mode 100644
index 0000000..1111111
Binary files /dev/null and b/logo.png differ
"""


class TestNormalizePath:
    def test_strips_prefixes(self) -> None:
        assert normalize_diff_path("a/src/x.py") == "src/x.py"
        assert normalize_diff_path("b/src/x.py") == "src/x.py"
        assert normalize_diff_path("./src/x.py") == "src/x.py"
        assert normalize_diff_path("/src/x.py") == "src/x.py"
        assert normalize_diff_path("src\\win\\x.py") == "src/win/x.py"


class TestParseHunks:
    def test_positions_span_hunks(self) -> None:
        result = parse_hunks(TWO_HUNKS)
        assert isinstance(result, Ok)
        parsed = result.value
        # second header occupies its own position
        assert parsed.line_positions == {1: 1, 2: 3, 3: 4, 10: 6, 11: 7, 12: 8}
        assert parsed.added_lines == frozenset({2, 11})
        assert parsed.additions == 2
        assert parsed.deletions == 1
        assert len(parsed.hunks) == 2

    def test_omitted_lengths_default_to_one(self) -> None:
        result = parse_hunks("@@ -5 +5 @@\n-old\n+new\n")
        assert isinstance(result, Ok)
        assert result.value.line_positions == {5: 2}

    def test_malformed_header(self) -> None:
        result = parse_hunks("@@ -x,1 +1 @@\n+oops\n")
        assert isinstance(result, Err)
        assert "malformed hunk header" in result.error


class TestCanonicalize:
    def test_sample_diff(self, sample_diff: CanonicalDiff) -> None:
        assert sample_diff.paths == ["src/a.ts", "src/b.ts", "src/c.ts"]
        a = sample_diff.get("src/a.ts")
        assert a is not None
        assert a.added_lines == frozenset({10, 11, 12})
        assert a.line_positions[10] == 3
        assert a.additions == 3

    def test_deleted_file_has_no_lines(self, sample_diff: CanonicalDiff) -> None:
        b = sample_diff.get("src/b.ts")
        assert b is not None
        assert b.is_deleted
        assert b.line_positions == {}
        assert b.deletions == 2

    def test_reviewable_excludes_deleted(self, sample_diff: CanonicalDiff) -> None:
        assert [f.path for f in sample_diff.reviewable_files()] == [
            "src/a.ts",
            "src/c.ts",
        ]

    def test_binary_file(self) -> None:
        diff = canonicalize_diff(BINARY_DIFF)
        logo = diff.get("logo.png")
        assert logo is not None
        assert logo.is_binary
        assert logo.status == FileStatus.ADDED
        assert logo.line_positions == {}

    def test_unparseable_file_is_isolated(self, sample_diff_text: str) -> None:
        changes = [
            FileChange(path="src/a.ts", additions=3),
            FileChange(path="src/c.ts", additions=1, deletions=1, patch="@@ bad @@\n+x"),
        ]
        diff = canonicalize_diff(sample_diff_text, changes)
        c = diff.get("src/c.ts")
        a = diff.get("src/a.ts")
        assert c is not None and a is not None
        assert c.parseable is False
        assert c.parse_error is not None
        assert a.parseable is True

    def test_line_ceiling_truncates_alphabetically(self, sample_diff_text: str) -> None:
        diff = canonicalize_diff(sample_diff_text, max_diff_lines=4)
        assert diff.paths == ["src/a.ts"]
        assert diff.not_analyzed == ("src/b.ts", "src/c.ts")

    def test_changes_from_diff(self, sample_diff_text: str) -> None:
        changes = {c.path: c for c in changes_from_diff(sample_diff_text)}
        assert changes["src/a.ts"].additions == 3
        assert changes["src/b.ts"].status == FileStatus.DELETED
        assert changes["src/c.ts"].changed_lines == 2

    def test_split_reads_rename_headers(self) -> None:
        raw = (
            "diff --git a/old.py b/new.py\n"
            "similarity index 100%\n"
            "rename from old.py\n"
            "rename to new.py\n"
        )
        [patch] = split_unified_diff(raw)
        assert patch.path == "new.py"
        assert patch.old_path == "old.py"
        assert patch.status == FileStatus.RENAMED
