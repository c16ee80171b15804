"""Tests for the review-router command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from review_router.cli import (
    EXIT_ERROR,
    EXIT_GATE_FAILED,
    EXIT_OK,
    _build_parser,
    main,
)
from tests.conftest import SAMPLE_DIFF

PATTERN_ONLY = (
    "passes:\n"
    "  - name: static\n"
    "    agents: [pattern]\n"
    "    required: true\n"
    "gating:\n"
    "  enabled: true\n"
    "  fail_on_severity: {severity}\n"
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REVIEW_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("TRACE_ENABLED", "false")
    monkeypatch.delenv("SYSTEM_PULLREQUEST_PULLREQUESTID", raising=False)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "change.diff").write_text(SAMPLE_DIFF)
    return tmp_path


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return int(exc_info.value.code or 0)


def _review_args(workspace: Path, severity: str = "error") -> list[str]:
    config = workspace / "review.yml"
    config.write_text(PATTERN_ONLY.format(severity=severity))
    return [
        "review",
        "--diff",
        str(workspace / "change.diff"),
        "--repo",
        str(workspace),
        "--config",
        str(config),
        "--pr",
        "42",
        "--head-sha",
        "abc123",
        "-o",
        str(workspace / "summary.json"),
    ]


class TestParser:
    def test_review_defaults(self) -> None:
        args = _build_parser().parse_args(["review", "--diff", "x.diff"])
        assert args.repo == "."
        assert args.summary == "review-summary.json"
        assert args.config is None
        assert not args.ado

    def test_event_and_ado_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(
                ["review", "--diff", "x", "--event", "e.json", "--ado"]
            )

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--version"])
        assert capsys.readouterr().out.startswith("review-router ")


class TestReviewCommand:
    def test_clean_gate_exits_zero(self, workspace: Path) -> None:
        assert _run(_review_args(workspace)) == EXIT_OK

        summary = json.loads((workspace / "summary.json").read_text())
        assert summary["status"] == "success"
        assert summary["summary"]["pr"] == 42
        assert [f["rule_id"] for f in summary["findings"]] == ["python-eval"]

    def test_blocking_finding_exits_one(self, workspace: Path) -> None:
        assert _run(_review_args(workspace, severity="warning")) == EXIT_GATE_FAILED
        summary = json.loads((workspace / "summary.json").read_text())
        assert summary["status"] == "failure"

    def test_markdown_digest(
        self, workspace: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _run([*_review_args(workspace), "--markdown"])
        assert "## AI Code Review Summary" in capsys.readouterr().out

    def test_fork_event_is_skipped(self, workspace: Path) -> None:
        event = workspace / "event.json"
        event.write_text(
            json.dumps({
                "pull_request": {
                    "number": 7,
                    "draft": False,
                    "user": {"login": "outsider"},
                    "head": {"sha": "abc123", "repo": {"full_name": "fork/widgets"}},
                    "base": {"sha": "def456", "repo": {"full_name": "acme/widgets"}},
                }
            })
        )
        argv = [a for a in _review_args(workspace) if a not in ("--pr", "42")]
        argv += ["--event", str(event)]

        assert _run(argv) == EXIT_OK
        summary = json.loads((workspace / "summary.json").read_text())
        assert summary["status"] == "skipped"
        assert summary["findings"] == []

    def test_fully_ignored_diff_is_skipped(self, workspace: Path) -> None:
        (workspace / ".reviewignore").write_text("src/\n")

        assert _run(_review_args(workspace)) == EXIT_OK
        summary = json.loads((workspace / "summary.json").read_text())
        assert summary["status"] == "skipped"
        assert summary["summary"]["excluded_paths"] == ["src/a.ts", "src/b.ts", "src/c.ts"]

    def test_ado_non_pr_build_is_error(self, workspace: Path) -> None:
        out = workspace / "summary.json"
        code = _run(
            ["review", "--diff", str(workspace / "change.diff"), "--ado", "-o", str(out)]
        )
        assert code == EXIT_ERROR
        summary = json.loads(out.read_text())
        assert summary["status"] == "error"
        assert summary["errors"][0]["code"] == "VALIDATION_INVALID_INPUT"

    def test_missing_diff_still_writes_summary(self, workspace: Path) -> None:
        out = workspace / "summary.json"
        code = _run(["review", "--diff", str(workspace / "absent.diff"), "-o", str(out)])
        assert code == EXIT_ERROR
        assert json.loads(out.read_text())["status"] == "error"

    def test_bad_head_sha(self, workspace: Path) -> None:
        argv = _review_args(workspace)
        argv[argv.index("abc123")] = "bad;ref"
        assert _run(argv) == EXIT_ERROR


class TestPruneCommand:
    def test_prune_removes_expired(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        cache = tmp_path / "cache"
        cache.mkdir()
        (cache / ".leftover.tmp").write_text("")
        (cache / "garbage.json").write_text("{not json")

        assert _run(["prune-cache"]) == EXIT_OK
        assert "Removed 2 cache file(s)" in capsys.readouterr().out
