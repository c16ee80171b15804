"""Pydantic models for findings and agent results.

``AgentResult`` is a closed union discriminated on ``status``. Every
consumer switches on it exhaustively::

    match result:
        case AgentSuccess(): ...
        case AgentFailure(): ...
        case AgentSkipped(): ...
        case _:
            assert_never(result)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from review_router.constants import (
    FailureStage,
    Provenance,
    Severity,
)
from review_router.validation import normalize_repo_path


class Finding(BaseModel):
    """One reported issue, anchored to new-file coordinates."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    file: str
    line: int | None = Field(default=None, ge=0)
    end_line: int | None = Field(default=None, ge=0)
    message: str
    suggestion: str | None = None
    rule_id: str | None = None
    source_agent: str
    fingerprint: str | None = None
    metadata: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())
    provenance: Provenance = Provenance.COMPLETE
    contributing_agents: list[str] = Field(default_factory=lambda: list[str]())

    @field_validator("file")
    @classmethod
    def _normalize_file(cls, v: str) -> str:
        return normalize_repo_path(v)

    @property
    def is_file_level(self) -> bool:
        return self.line is None

    def at_file_level(self) -> Finding:
        """Copy with line anchors removed."""
        return self.model_copy(update={"line": None, "end_line": None})

    def as_partial(self) -> Finding:
        return self.model_copy(update={"provenance": Provenance.PARTIAL})


class AgentMetrics(BaseModel):
    """Resources consumed by one agent invocation."""

    model_config = ConfigDict(frozen=True)

    duration_ms: float = Field(default=0.0, ge=0)
    files_processed: int = Field(default=0, ge=0)
    tokens_used: int = Field(default=0, ge=0)
    estimated_cost_usd: float = Field(default=0.0, ge=0)


class AgentSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    agent_id: str
    findings: list[Finding] = Field(default_factory=lambda: list[Finding]())
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)


class AgentFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failure"] = "failure"
    agent_id: str
    error: str
    error_code: str | None = None
    failure_stage: FailureStage
    partial_findings: list[Finding] = Field(
        default_factory=lambda: list[Finding]()
    )
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)


class AgentSkipped(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["skipped"] = "skipped"
    agent_id: str
    reason: str
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)


AgentResult = Annotated[
    AgentSuccess | AgentFailure | AgentSkipped,
    Field(discriminator="status"),
]

AgentResultAdapter: TypeAdapter[AgentSuccess | AgentFailure | AgentSkipped] = (
    TypeAdapter(AgentResult)
)


@dataclass(frozen=True)
class SkippedAgent:
    agent_id: str
    name: str
    reason: str
    pass_name: str = ""


class AgentExecution(BaseModel):
    """Audit row for one agent within a pass."""

    agent_id: str
    status: str
    duration_ms: float = 0.0
    findings_count: int = 0
    cached: bool = False
    failure_stage: str | None = None
    reason: str | None = None


class PassSummary(BaseModel):
    """Audit row for one pass."""

    name: str
    enabled: bool
    required: bool
    agents: list[AgentExecution] = Field(
        default_factory=lambda: list[AgentExecution]()
    )
    duration_ms: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for a in self.agents if a.status == "success")


@dataclass
class ExecuteResult:
    """Aggregate of one pipeline run."""

    complete_findings: list[Finding] = field(
        default_factory=lambda: list[Finding]()
    )
    partial_findings: list[Finding] = field(
        default_factory=lambda: list[Finding]()
    )
    all_results: list[AgentResult] = field(
        default_factory=lambda: list[AgentResult]()
    )
    skipped_agents: list[SkippedAgent] = field(
        default_factory=lambda: list[SkippedAgent]()
    )
    pass_summaries: list[PassSummary] = field(
        default_factory=lambda: list[PassSummary]()
    )
    required_pass_failures: list[str] = field(
        default_factory=lambda: list[str]()
    )
    live_invocations: int = 0

    @property
    def total_metrics(self) -> AgentMetrics:
        return AgentMetrics(
            duration_ms=sum(r.metrics.duration_ms for r in self.all_results),
            files_processed=sum(
                r.metrics.files_processed for r in self.all_results
            ),
            tokens_used=sum(r.metrics.tokens_used for r in self.all_results),
            estimated_cost_usd=sum(
                r.metrics.estimated_cost_usd for r in self.all_results
            ),
        )
