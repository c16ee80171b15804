"""Tests for finding remap, fingerprint, dedup, sort and bounding."""

from __future__ import annotations

from review_router.config import Reporting
from review_router.constants import Provenance, Severity
from review_router.diff.line_resolver import LineResolver
from review_router.diff.models import CanonicalDiff
from review_router.diff.parser import canonicalize_diff
from review_router.findings.normalize import (
    bound_findings,
    compute_fingerprint,
    dedup_complete,
    dedup_partial,
    normalize_findings,
    normalize_message,
    remap_findings,
    sort_findings,
)
from tests.conftest import make_finding

RENAME_DIFF = """\
diff --git a/lib/old.py b/lib/new.py
similarity index 90%
rename from lib/old.py
rename to lib/new.py
index 1111111..2222222 100644
--- a/lib/old.py
+++ b/lib/new.py
@@ -1,2 +1,3 @@
 import os
+import sys
 print(os.getcwd())
"""


class TestFingerprint:
    def test_message_normalization(self) -> None:
        assert normalize_message("  Use   of\tEVAL\n here ") == "use of eval here"
        assert len(normalize_message("x" * 500)) == 80

    def test_ignores_agent_and_severity(self) -> None:
        a = make_finding(source_agent="one", severity=Severity.ERROR)
        b = make_finding(source_agent="two", severity=Severity.INFO)
        assert compute_fingerprint(a) == compute_fingerprint(b)

    def test_whitespace_and_case_insensitive(self) -> None:
        a = make_finding(message="Possible  SQL injection")
        b = make_finding(message="possible sql injection ")
        assert compute_fingerprint(a) == compute_fingerprint(b)

    def test_line_and_rule_distinguish(self) -> None:
        base = make_finding()
        assert compute_fingerprint(base) != compute_fingerprint(
            make_finding(line=11)
        )
        assert compute_fingerprint(base) != compute_fingerprint(
            make_finding(rule_id="r1")
        )

    def test_file_level_uses_zero(self) -> None:
        assert compute_fingerprint(make_finding(line=None)) == compute_fingerprint(
            make_finding(line=0)
        )

    def test_length(self) -> None:
        assert len(compute_fingerprint(make_finding())) == 16


class TestRemap:
    def test_drops_unknown_file(self, sample_diff: CanonicalDiff) -> None:
        resolver = LineResolver(sample_diff)
        out = remap_findings([make_finding("src/nowhere.ts", 3)], resolver)
        assert out == []

    def test_demotes_invisible_line(self, sample_diff: CanonicalDiff) -> None:
        resolver = LineResolver(sample_diff)
        out = remap_findings(
            [make_finding("src/a.ts", 50), make_finding("src/b.ts", 1)], resolver
        )
        assert [(f.file, f.line) for f in out] == [
            ("src/a.ts", None),
            ("src/b.ts", None),
        ]

    def test_keeps_context_line(self, sample_diff: CanonicalDiff) -> None:
        resolver = LineResolver(sample_diff)
        out = remap_findings([make_finding("src/a.ts", 8)], resolver)
        assert out[0].line == 8

    def test_old_path_follows_rename(self) -> None:
        resolver = LineResolver(canonicalize_diff(RENAME_DIFF))
        out = remap_findings([make_finding("lib/old.py", 2)], resolver)
        assert out[0].file == "lib/new.py"
        assert out[0].line == 2


class TestDedup:
    def test_complete_merges_across_agents(self) -> None:
        findings = [
            make_finding(source_agent="b", severity=Severity.WARNING),
            make_finding(source_agent="a", severity=Severity.ERROR),
        ]
        out = dedup_complete(findings)
        assert len(out) == 1
        assert out[0].severity == Severity.ERROR
        assert out[0].contributing_agents == ["a", "b"]

    def test_complete_is_idempotent(self) -> None:
        findings = [
            make_finding(source_agent="a"),
            make_finding(source_agent="b"),
            make_finding(line=11, message="Other", source_agent="a"),
        ]
        once = dedup_complete(findings)
        assert dedup_complete(once) == once

    def test_partial_is_agent_scoped(self) -> None:
        findings = [
            make_finding(source_agent="a"),
            make_finding(source_agent="a"),
            make_finding(source_agent="b"),
        ]
        out = dedup_partial(findings)
        assert sorted(f.source_agent for f in out) == ["a", "b"]

    def test_partial_never_merged_with_complete(
        self, sample_diff: CanonicalDiff
    ) -> None:
        complete = [make_finding(source_agent="y")]
        partial = [make_finding(source_agent="x").as_partial()]
        result = normalize_findings(
            complete, partial, LineResolver(sample_diff), Reporting()
        )
        assert len(result.complete) == 1
        assert len(result.partial) == 1
        assert result.partial[0].provenance == Provenance.PARTIAL
        assert result.complete[0].contributing_agents == ["y"]


class TestSortAndBound:
    def test_sort_order(self) -> None:
        findings = [
            make_finding("src/b.ts", 5, severity=Severity.WARNING),
            make_finding("src/a.ts", 9, severity=Severity.WARNING),
            make_finding("src/a.ts", None, severity=Severity.WARNING),
            make_finding("src/z.ts", 1, severity=Severity.ERROR),
            make_finding("src/a.ts", 9, severity=Severity.WARNING, source_agent="a"),
        ]
        out = sort_findings(findings)
        assert [(f.file, f.line, f.source_agent) for f in out] == [
            ("src/z.ts", 1, "agent"),
            ("src/a.ts", None, "agent"),
            ("src/a.ts", 9, "a"),
            ("src/a.ts", 9, "agent"),
            ("src/b.ts", 5, "agent"),
        ]

    def test_bound_marker(self) -> None:
        findings = [make_finding(line=i) for i in range(5)]
        bounded = bound_findings(findings, 3)
        assert len(bounded.items) == 3
        assert bounded.omitted == 2
        assert bounded.marker == "+2 more, see full log"

    def test_within_bound_has_no_marker(self) -> None:
        bounded = bound_findings([make_finding()], 3)
        assert bounded.omitted == 0
        assert bounded.marker is None

    def test_inline_bound_only_counts_anchored(
        self, sample_diff: CanonicalDiff
    ) -> None:
        findings = [
            make_finding("src/a.ts", line, f"issue {line}") for line in (10, 11, 12)
        ] + [make_finding("src/a.ts", None, "file level")]
        result = normalize_findings(
            findings,
            [],
            LineResolver(sample_diff),
            Reporting(max_inline_comments=2, max_annotations=10),
        )
        assert len(result.complete) == 4
        assert len(result.inline.items) == 2
        assert result.inline.omitted == 1
        assert result.annotations.omitted == 0
        assert result.count_by_severity() == {"error": 0, "warning": 4, "info": 0}
