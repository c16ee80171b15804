"""Run summary: the stable JSON document every run produces.

Downstream automation parses this file, so field names only ever get
added, never renamed. ``schema_version`` is bumped on breaking change.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from review_router.constants import SUMMARY_SCHEMA_VERSION, RunStatus, Severity
from review_router.errors import AgentError, AgentErrorCode, ReviewError
from review_router.findings.normalize import NormalizedFindings
from review_router.models import (
    AgentFailure,
    ExecuteResult,
    Finding,
    PassSummary,
)
from review_router.pipeline.gating import GatingDecision
from review_router.pipeline.preflight import TRUST_GATE

logger = logging.getLogger(__name__)


class SkippedAgentRow(BaseModel):
    agent_id: str
    name: str
    reason: str
    pass_name: str = ""


class SummaryStats(BaseModel):
    """Headline numbers for the run."""

    pr: int | None = None
    head_sha: str | None = None
    config_hash: str | None = None
    total_findings: int = 0
    errors: int = 0
    warnings: int = 0
    info: int = 0
    partial_findings: int = 0
    inline_comments: int = 0
    inline_omitted: int = 0
    annotations: int = 0
    annotations_omitted: int = 0
    markers: list[str] = Field(default_factory=lambda: list[str]())
    gating_passed: bool = True
    gating_reason: str | None = None
    skip_reason: str | None = None
    required_pass_failures: list[str] = Field(default_factory=lambda: list[str]())
    excluded_paths: list[str] = Field(default_factory=lambda: list[str]())
    tokens_used: int = 0
    cost_usd: float = 0.0
    live_invocations: int = 0
    duration_ms: float = 0.0


class RunSummary(BaseModel):
    schema_version: int = SUMMARY_SCHEMA_VERSION
    status: RunStatus
    summary: SummaryStats = Field(default_factory=SummaryStats)
    findings: list[Finding] = Field(default_factory=lambda: list[Finding]())
    partial_findings: list[Finding] = Field(default_factory=lambda: list[Finding]())
    passes: list[PassSummary] = Field(default_factory=lambda: list[PassSummary]())
    skipped_agents: list[SkippedAgentRow] = Field(
        default_factory=lambda: list[SkippedAgentRow]()
    )
    not_analyzed: list[str] = Field(default_factory=lambda: list[str]())
    errors: list[dict[str, Any]] = Field(
        default_factory=lambda: list[dict[str, Any]]()
    )

    @classmethod
    def from_error(
        cls,
        error: ReviewError,
        *,
        pr: int | None = None,
        duration_ms: float = 0.0,
    ) -> RunSummary:
        """Summary for a run aborted before any agent executed.

        A trust-gate rejection is a skip, not an error.
        """
        status = (
            RunStatus.SKIPPED
            if error.context.get("gate") == TRUST_GATE
            else RunStatus.ERROR
        )
        return cls(
            status=status,
            summary=SummaryStats(pr=pr, duration_ms=duration_ms),
            errors=[dict(error.to_wire())],
        )

    @classmethod
    def skipped(cls, reason: str, *, stats: SummaryStats) -> RunSummary:
        """Summary for a run with nothing left to review; not an error."""
        return cls(
            status=RunStatus.SKIPPED,
            summary=stats.model_copy(update={"skip_reason": reason}),
        )

    @classmethod
    def from_run(
        cls,
        executed: ExecuteResult,
        normalized: NormalizedFindings,
        gating: GatingDecision,
        *,
        not_analyzed: list[str],
        stats: SummaryStats,
    ) -> RunSummary:
        counts = normalized.count_by_severity()
        totals = executed.total_metrics
        markers = [
            m
            for m in (normalized.inline.marker, normalized.annotations.marker)
            if m is not None
        ]
        filled = stats.model_copy(
            update={
                "total_findings": len(normalized.complete),
                "errors": counts[Severity.ERROR],
                "warnings": counts[Severity.WARNING],
                "info": counts[Severity.INFO],
                "partial_findings": len(normalized.partial),
                "inline_comments": len(normalized.inline.items),
                "inline_omitted": normalized.inline.omitted,
                "annotations": len(normalized.annotations.items),
                "annotations_omitted": normalized.annotations.omitted,
                "markers": markers,
                "gating_passed": gating.passed,
                "gating_reason": gating.reason,
                "required_pass_failures": list(executed.required_pass_failures),
                "tokens_used": totals.tokens_used,
                "cost_usd": round(totals.estimated_cost_usd, 6),
                "live_invocations": executed.live_invocations,
            }
        )
        return cls(
            status=RunStatus.SUCCESS if gating.passed else RunStatus.FAILURE,
            summary=filled,
            findings=normalized.complete,
            partial_findings=normalized.partial,
            passes=executed.pass_summaries,
            skipped_agents=[
                SkippedAgentRow(
                    agent_id=s.agent_id,
                    name=s.name,
                    reason=s.reason,
                    pass_name=s.pass_name,
                )
                for s in executed.skipped_agents
            ],
            not_analyzed=not_analyzed,
            errors=[
                dict(_failure_error(r).to_wire())
                for r in executed.all_results
                if isinstance(r, AgentFailure)
            ],
        )

    def to_json(self) -> str:
        """Stable serialization: sorted keys, two-space indent."""
        return json.dumps(
            self.model_dump(mode="json"), sort_keys=True, indent=2, ensure_ascii=False
        )

    def write_summary(self, path: Path) -> None:
        """Write atomically: temp file in the target directory, then rename."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(self.to_json())
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(
            "event=summary_written path=%s status=%s findings=%d",
            path,
            self.status,
            len(self.findings),
        )

    def to_markdown(self) -> str:
        """Human-readable digest for a PR comment or job log."""
        s = self.summary
        lines = [
            "## AI Code Review Summary",
            "",
            "| Severity | Count |",
            "|----------|-------|",
            f"| Errors | {s.errors} |",
            f"| Warnings | {s.warnings} |",
            f"| Info | {s.info} |",
            "",
        ]
        if s.skip_reason:
            lines.append(f"Review skipped: {s.skip_reason}.")
        elif not self.findings and not self.partial_findings:
            lines.append("No issues found.")
        for title, findings in (
            ("Findings", self.findings),
            ("Partial findings (from failed agents)", self.partial_findings),
        ):
            if not findings:
                continue
            lines.extend([f"### {title}", ""])
            for f in findings:
                where = f"{f.file}:{f.line}" if f.line is not None else f.file
                lines.append(
                    f"- **{f.severity}** `{where}` [{f.source_agent}]: {f.message}"
                )
            lines.append("")
        lines.extend(s.markers)
        if self.not_analyzed:
            lines.append(
                f"{len(self.not_analyzed)} file(s) not analyzed (diff line limit)."
            )
        if self.skipped_agents:
            lines.append(
                "Skipped: "
                + ", ".join(f"{a.agent_id} ({a.reason})" for a in self.skipped_agents)
            )
        return "\n".join(lines).rstrip() + "\n"


def _failure_error(failure: AgentFailure) -> AgentError:
    return AgentError(
        failure.error,
        failure.error_code or AgentErrorCode.EXECUTION_FAILED,
        {
            "agent_id": failure.agent_id,
            "failure_stage": str(failure.failure_stage),
            "partial_findings": len(failure.partial_findings),
        },
    )
