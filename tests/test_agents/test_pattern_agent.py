"""Tests for the isolated regex pattern agent."""

from __future__ import annotations

from pathlib import Path

import pytest

from review_router.agents.base import AgentContext
from review_router.agents.pattern_agent import PatternAgent, PatternRule
from review_router.budget import BudgetLedger
from review_router.config import ReviewConfig, Settings, parse_review_config
from review_router.constants import FailureStage, FileStatus, Provenance, Severity
from review_router.diff.models import CanonicalDiff, CanonicalDiffFile
from review_router.diff.parser import canonicalize_diff
from review_router.errors import AgentErrorCode
from review_router.models import AgentFailure, AgentSuccess
from review_router.pipeline.orchestrator import ExecutionContext, execute_all_passes
from review_router.results import unwrap
from tests.conftest import make_registry

SLOW_DIFF = (
    "diff --git a/first.py b/first.py\n"
    "--- a/first.py\n"
    "+++ b/first.py\n"
    "@@ -1,1 +1,2 @@\n"
    " import os\n"
    "+eval(x)\n"
    "diff --git a/second.py b/second.py\n"
    "--- a/second.py\n"
    "+++ b/second.py\n"
    "@@ -1,1 +1,2 @@\n"
    " import os\n"
    f"+{'a' * 30}b\n"
)

SLOW_RULES = [
    PatternRule("python-eval", r"\beval\s*\(", "Use of eval"),
    PatternRule("slow", r"(a+)+$", "Nested quantifier", Severity.INFO),
]


def _context(
    diff: CanonicalDiff,
    config: ReviewConfig,
    timeout: float | None = 30,
) -> AgentContext:
    return AgentContext(
        repo_path=Path("."),
        diff=diff,
        diff_text="",
        config=config,
        files=list(diff.files),
        timeout_seconds=timeout,
    )


class TestPatternAgent:
    @pytest.mark.asyncio
    async def test_finds_eval_on_added_line(
        self, sample_diff: CanonicalDiff, review_config: ReviewConfig
    ) -> None:
        result = await PatternAgent().run(_context(sample_diff, review_config))

        assert isinstance(result, AgentSuccess)
        assert [(f.file, f.line, f.rule_id) for f in result.findings] == [
            ("src/a.ts", 11, "python-eval")
        ]
        assert result.findings[0].source_agent == "pattern"
        assert result.metrics.files_processed == 2

    def test_deleted_files_unsupported(self, sample_diff: CanonicalDiff) -> None:
        agent = PatternAgent()
        deleted = sample_diff.get("src/b.ts")
        assert deleted is not None
        assert not agent.supports(deleted)

    def test_extension_filter(self, sample_diff: CanonicalDiff) -> None:
        agent = PatternAgent(extensions=[".py"])
        assert not any(agent.supports(f) for f in sample_diff.files)

    def test_non_canonical_path_unsupported(self) -> None:
        odd = CanonicalDiffFile(
            path="docs/my notes.py",
            status=FileStatus.MODIFIED,
            line_positions={1: 1},
        )
        assert not PatternAgent().supports(odd)

    @pytest.mark.asyncio
    async def test_invalid_rule_fails_before_spawning(
        self, sample_diff: CanonicalDiff, review_config: ReviewConfig
    ) -> None:
        agent = PatternAgent([PatternRule("broken", "(", "unbalanced")])
        result = await agent.run(_context(sample_diff, review_config))

        assert isinstance(result, AgentFailure)
        assert result.failure_stage == FailureStage.PREFLIGHT
        assert result.error_code == AgentErrorCode.PARSE_ERROR
        assert "broken" in result.error

    @pytest.mark.asyncio
    async def test_runaway_regex_times_out_with_partials(
        self, review_config: ReviewConfig
    ) -> None:
        diff = canonicalize_diff(SLOW_DIFF)
        context = _context(diff, review_config, timeout=3.0)
        result = await PatternAgent(SLOW_RULES).run(context)

        assert isinstance(result, AgentFailure)
        assert result.failure_stage == FailureStage.TIMEOUT
        assert [f.file for f in result.partial_findings] == ["first.py"]


class TestPreemptionThroughOrchestrator:
    @pytest.mark.asyncio
    async def test_deadline_keeps_reported_findings(self, settings: Settings) -> None:
        """The orchestrator's deadline stops a blocked agent process."""
        config = unwrap(
            parse_review_config({
                "passes": [{"name": "static", "agents": ["pattern"]}],
                "agent_timeouts": {"pattern": 3.0},
            })
        )
        diff = canonicalize_diff(SLOW_DIFF)
        ctx = ExecutionContext(
            repo_path=Path("."),
            diff=diff,
            diff_text=SLOW_DIFF,
            config=config,
            settings=settings,
        )

        result = await execute_all_passes(
            config.passes,
            make_registry(PatternAgent(SLOW_RULES)),  # type: ignore[arg-type]
            ctx,
            BudgetLedger(max_tokens=1000, max_usd=1.0),
        )

        (failure,) = result.all_results
        assert isinstance(failure, AgentFailure)
        assert failure.failure_stage == FailureStage.TIMEOUT
        assert [f.file for f in result.partial_findings] == ["first.py"]
        assert all(f.provenance == Provenance.PARTIAL for f in result.partial_findings)
        assert result.complete_findings == []
