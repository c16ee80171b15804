"""Pass and agent orchestration.

Passes run strictly in order. Agents inside a pass run concurrently
behind a semaphore and the pass ends at an ``asyncio.gather`` barrier.
Every agent outcome is classified as success, failure (optionally with
partial findings) or skipped; nothing an agent does can abort the run.

The :class:`~review_router.budget.BudgetLedger` is the only state
shared between concurrently running agents. It is debited here, once
per live invocation, after the agent finishes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import assert_never

from review_router.agents.base import AgentContext, AgentRegistry, ReviewAgent
from review_router.agents.security import build_agent_env
from review_router.budget import (
    ZERO_COST,
    BudgetLedger,
    CostEstimate,
    estimate_text_cost,
)
from review_router.cache.keys import CacheKeyInputs, generate_cache_key
from review_router.cache.runner import CachedAgentRunner
from review_router.config import PassConfig, ReviewConfig, Settings
from review_router.constants import (
    ERROR_TRUNCATION_CHARS,
    MAX_PARALLELISM_CAP,
    SKIP_BUDGET_EXHAUSTED,
    SKIP_NO_APPLICABLE_FILES,
    SKIP_PASS_DISABLED,
    FailureStage,
)
from review_router.diff.models import CanonicalDiff, CanonicalDiffFile
from review_router.errors import AgentErrorCode
from review_router.models import (
    AgentExecution,
    AgentFailure,
    AgentMetrics,
    AgentResult,
    AgentSkipped,
    AgentSuccess,
    ExecuteResult,
    PassSummary,
    SkippedAgent,
)
from review_router.observability import emitters
from review_router.observability.dispatcher import TraceDispatcher

logger = logging.getLogger(__name__)

type CostEstimator = Callable[[ReviewAgent, list[CanonicalDiffFile]], CostEstimate]


def estimate_agent_cost(
    agent: ReviewAgent, files: list[CanonicalDiffFile]
) -> CostEstimate:
    """LLM agents are charged for the hunks they will read; others are free."""
    if not agent.uses_llm:
        return ZERO_COST
    return estimate_text_cost("\n".join(f.patch_text for f in files))


@dataclass
class ExecutionContext:
    """Run-wide inputs shared by every agent invocation."""

    repo_path: Path
    diff: CanonicalDiff
    diff_text: str
    config: ReviewConfig
    settings: Settings
    environ: Mapping[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )
    pr_number: int | None = None
    head_sha: str | None = None
    runner: CachedAgentRunner | None = None
    dispatcher: TraceDispatcher | None = None
    trace_id: str = "review"
    estimator: CostEstimator = estimate_agent_cost
    paid_llm_allowed: bool = True
    config_hash: str = field(init=False)

    def __post_init__(self) -> None:
        self.config_hash = self.config.config_hash()

    @property
    def effective_model(self) -> str:
        """Model LLM agents call: the config default, else the environment's."""
        return self.config.models.default or self.settings.litellm_model

    def timeout_for(self, agent_id: str) -> float:
        return self.config.agent_timeouts.get(
            agent_id, self.settings.agent_timeout_seconds
        )

    def cache_key(self, agent_id: str) -> str | None:
        """None when caching is off or the PR head is unknown."""
        if self.runner is None or self.pr_number is None or not self.head_sha:
            return None
        return generate_cache_key(
            CacheKeyInputs(
                pr_number=self.pr_number,
                head_sha=self.head_sha,
                config_hash=self.config_hash,
                agent_id=agent_id,
                model=self.effective_model,
            )
        )


@dataclass(frozen=True)
class _PlannedAgent:
    agent_id: str
    agent: ReviewAgent | None
    files: list[CanonicalDiffFile]


@dataclass(frozen=True)
class _AgentRun:
    result: AgentResult
    cached: bool = False


def _plan_pass(
    pass_cfg: PassConfig, registry: AgentRegistry, diff: CanonicalDiff
) -> list[_PlannedAgent]:
    planned: list[_PlannedAgent] = []
    for agent_id in pass_cfg.agents:
        agent = registry.get(agent_id)
        files = (
            [f for f in diff.files if agent.supports(f)]
            if agent is not None
            else []
        )
        planned.append(_PlannedAgent(agent_id=agent_id, agent=agent, files=files))
    return planned


def _agent_name(registry: AgentRegistry, agent_id: str) -> str:
    agent = registry.get(agent_id)
    return agent.name if agent is not None else agent_id


def _skip_pass(
    out: ExecuteResult,
    pass_cfg: PassConfig,
    registry: AgentRegistry,
    reason: str,
) -> None:
    summary = PassSummary(
        name=pass_cfg.name,
        enabled=pass_cfg.enabled,
        required=pass_cfg.required,
    )
    for agent_id in pass_cfg.agents:
        out.all_results.append(AgentSkipped(agent_id=agent_id, reason=reason))
        out.skipped_agents.append(
            SkippedAgent(
                agent_id=agent_id,
                name=_agent_name(registry, agent_id),
                reason=reason,
                pass_name=pass_cfg.name,
            )
        )
        summary.agents.append(
            AgentExecution(agent_id=agent_id, status="skipped", reason=reason)
        )
    out.pass_summaries.append(summary)
    # A disabled pass was switched off on purpose; a starved one did not run.
    if pass_cfg.required and reason == SKIP_BUDGET_EXHAUSTED:
        out.required_pass_failures.append(pass_cfg.name)
    logger.info(
        "event=pass_skipped pass=%s agents=%d reason=%s",
        pass_cfg.name,
        len(pass_cfg.agents),
        reason,
    )


async def execute_all_passes(
    passes: Sequence[PassConfig],
    registry: AgentRegistry,
    ctx: ExecutionContext,
    ledger: BudgetLedger,
) -> ExecuteResult:
    """Run every pass in order and aggregate the outcomes.

    Before each pass the summed per-agent estimate is checked against
    the ledger. If it cannot be afforded, this pass and every later one
    are skipped with ``"budget exhausted"``; results already collected
    are still returned.
    """
    out = ExecuteResult()
    for index, pass_cfg in enumerate(passes):
        if not pass_cfg.enabled:
            _skip_pass(out, pass_cfg, registry, SKIP_PASS_DISABLED)
            continue

        planned = _plan_pass(pass_cfg, registry, ctx.diff)
        if not ctx.paid_llm_allowed and any(
            p.agent is not None and p.agent.uses_llm for p in planned
        ):
            # PR is over its preflight budget; only paid passes are skipped.
            _skip_pass(out, pass_cfg, registry, SKIP_BUDGET_EXHAUSTED)
            continue

        estimate = sum(
            (
                ctx.estimator(p.agent, p.files)
                for p in planned
                if p.agent is not None and p.files
            ),
            ZERO_COST,
        )
        check = ledger.can_afford(estimate)
        if not check.allowed:
            logger.warning(
                "event=budget_stop pass=%s estimated_usd=%.4f "
                "remaining_usd=%.4f reason=%s",
                pass_cfg.name,
                estimate.usd,
                ledger.remaining_usd,
                check.reason,
            )
            for remaining in passes[index:]:
                _skip_pass(out, remaining, registry, SKIP_BUDGET_EXHAUSTED)
            break

        await _run_pass(pass_cfg, planned, registry, ctx, ledger, out)

    logger.info(
        "event=passes_done complete=%d partial=%d skipped=%d live=%d",
        len(out.complete_findings),
        len(out.partial_findings),
        len(out.skipped_agents),
        out.live_invocations,
    )
    return out


async def _run_pass(
    pass_cfg: PassConfig,
    planned: list[_PlannedAgent],
    registry: AgentRegistry,
    ctx: ExecutionContext,
    ledger: BudgetLedger,
    out: ExecuteResult,
) -> None:
    start = time.monotonic()
    if ctx.dispatcher is not None:
        await emitters.emit_pass_start(
            ctx.dispatcher, ctx.trace_id, pass_cfg.name, len(planned)
        )

    limit = max(1, min(len(planned), ctx.settings.max_parallelism, MAX_PARALLELISM_CAP))
    semaphore = asyncio.Semaphore(limit)
    runs = await asyncio.gather(
        *(_run_agent(p, ctx, ledger, semaphore, out) for p in planned)
    )

    summary = PassSummary(
        name=pass_cfg.name, enabled=True, required=pass_cfg.required
    )
    for p, run in zip(planned, runs, strict=True):
        result = run.result
        out.all_results.append(result)
        match result:
            case AgentSuccess():
                out.complete_findings.extend(result.findings)
                row = AgentExecution(
                    agent_id=p.agent_id,
                    status=result.status,
                    duration_ms=result.metrics.duration_ms,
                    findings_count=len(result.findings),
                    cached=run.cached,
                )
            case AgentFailure():
                out.partial_findings.extend(
                    f.as_partial() for f in result.partial_findings
                )
                row = AgentExecution(
                    agent_id=p.agent_id,
                    status=result.status,
                    duration_ms=result.metrics.duration_ms,
                    findings_count=len(result.partial_findings),
                    cached=run.cached,
                    failure_stage=result.failure_stage,
                    reason=result.error,
                )
            case AgentSkipped():
                out.skipped_agents.append(
                    SkippedAgent(
                        agent_id=p.agent_id,
                        name=_agent_name(registry, p.agent_id),
                        reason=result.reason,
                        pass_name=pass_cfg.name,
                    )
                )
                row = AgentExecution(
                    agent_id=p.agent_id,
                    status=result.status,
                    reason=result.reason,
                )
            case _:
                assert_never(result)
        summary.agents.append(row)

    summary.duration_ms = (time.monotonic() - start) * 1000
    out.pass_summaries.append(summary)

    if pass_cfg.required and summary.success_count == 0:
        out.required_pass_failures.append(pass_cfg.name)
        logger.warning(
            "event=required_pass_failed pass=%s agents=%d",
            pass_cfg.name,
            len(planned),
        )

    logger.info(
        "event=pass_done pass=%s agents=%d successes=%d duration_ms=%.0f",
        pass_cfg.name,
        len(planned),
        summary.success_count,
        summary.duration_ms,
    )
    if ctx.dispatcher is not None:
        await emitters.emit_pass_end(
            ctx.dispatcher,
            ctx.trace_id,
            pass_cfg.name,
            summary.duration_ms,
            summary.success_count,
        )


async def _run_agent(
    planned: _PlannedAgent,
    ctx: ExecutionContext,
    ledger: BudgetLedger,
    semaphore: asyncio.Semaphore,
    out: ExecuteResult,
) -> _AgentRun:
    agent = planned.agent
    if agent is None:
        logger.warning("event=agent_not_found agent=%s", planned.agent_id)
        return _AgentRun(
            AgentFailure(
                agent_id=planned.agent_id,
                error=f"Unknown agent: {planned.agent_id}",
                error_code=AgentErrorCode.NOT_FOUND,
                failure_stage=FailureStage.PREFLIGHT,
            )
        )
    if not planned.files:
        return _AgentRun(
            AgentSkipped(agent_id=agent.id, reason=SKIP_NO_APPLICABLE_FILES)
        )

    async with semaphore:
        # Agents queued behind the semaphore see overruns of earlier ones.
        if ledger.exhausted:
            logger.info("event=agent_budget_skip agent=%s", agent.id)
            return _AgentRun(
                AgentSkipped(agent_id=agent.id, reason=SKIP_BUDGET_EXHAUSTED)
            )
        return await _invoke_agent(agent, planned.files, ctx, ledger, out)


async def _invoke_agent(
    agent: ReviewAgent,
    files: list[CanonicalDiffFile],
    ctx: ExecutionContext,
    ledger: BudgetLedger,
    out: ExecuteResult,
) -> _AgentRun:
    timeout = ctx.timeout_for(agent.id)
    agent_ctx = AgentContext(
        repo_path=ctx.repo_path,
        diff=ctx.diff,
        diff_text=ctx.diff_text,
        config=ctx.config,
        env=build_agent_env(
            ctx.environ,
            uses_llm=agent.uses_llm,
            extra_allowlist=ctx.settings.agent_env_allowlist,
        ),
        files=files,
        effective_model=ctx.config.models.default,
        provider=ctx.config.models.provider,
        pr_number=ctx.pr_number,
        timeout_seconds=timeout,
    )
    invoked = False

    async def _live() -> AgentResult:
        nonlocal invoked
        invoked = True
        out.live_invocations += 1
        return await _run_with_deadline(agent, agent_ctx, timeout)

    if ctx.dispatcher is not None:
        await emitters.emit_agent_start(
            ctx.dispatcher, ctx.trace_id, agent.id, len(files)
        )

    key = ctx.cache_key(agent.id)
    if key is None or ctx.runner is None:
        result = await _live()
        cached = False
    else:
        try:
            outcome = await ctx.runner.run(key, _live)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "event=cache_runner_failed agent=%s key=%s invoked=%s",
                agent.id,
                key,
                invoked,
                exc_info=True,
            )
            if invoked:
                result = AgentFailure(
                    agent_id=agent.id,
                    error=f"{type(exc).__name__}: {exc}"[:ERROR_TRUNCATION_CHARS],
                    error_code=AgentErrorCode.EXECUTION_FAILED,
                    failure_stage=FailureStage.EXEC,
                    partial_findings=agent_ctx.partial.snapshot(),
                )
            else:
                result = await _live()
            cached = False
        else:
            result = outcome.result
            # A coalesced waiter shares the owner's result without running.
            cached = outcome.cached or not invoked
            if outcome.cached and ctx.dispatcher is not None:
                await emitters.emit_cache_hit(
                    ctx.dispatcher, ctx.trace_id, agent.id, key
                )

    if invoked:
        await ledger.debit(agent.id, result.metrics)

    logger.info(
        "event=agent_done agent=%s status=%s cached=%s duration_ms=%.0f tokens=%d",
        agent.id,
        result.status,
        cached,
        result.metrics.duration_ms,
        result.metrics.tokens_used,
    )
    if ctx.dispatcher is not None:
        await emitters.emit_agent_end(
            ctx.dispatcher,
            ctx.trace_id,
            agent.id,
            status=result.status,
            duration_ms=result.metrics.duration_ms,
            tokens=result.metrics.tokens_used,
            cost_usd=result.metrics.estimated_cost_usd,
            cached=cached,
        )
    return _AgentRun(result, cached)


async def _run_with_deadline(
    agent: ReviewAgent, agent_ctx: AgentContext, timeout: float
) -> AgentResult:
    """Run one agent under a hard deadline; never raises (except cancel)."""
    start = time.monotonic()

    def _metrics() -> AgentMetrics:
        return AgentMetrics(
            duration_ms=(time.monotonic() - start) * 1000,
            files_processed=len(agent_ctx.files),
        )

    try:
        async with asyncio.timeout(timeout):
            return await agent.run(agent_ctx)
    except TimeoutError:
        partial = agent_ctx.partial.snapshot()
        logger.warning(
            "event=agent_timeout agent=%s timeout_s=%.1f partial=%d",
            agent.id,
            timeout,
            len(partial),
        )
        return AgentFailure(
            agent_id=agent.id,
            error=f"Agent exceeded {timeout:.1f}s deadline",
            error_code=AgentErrorCode.TIMEOUT,
            failure_stage=FailureStage.TIMEOUT,
            partial_findings=partial,
            metrics=_metrics(),
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "event=agent_failed agent=%s error=%s",
            agent.id,
            exc,
            exc_info=True,
        )
        return AgentFailure(
            agent_id=agent.id,
            error=f"{type(exc).__name__}: {exc}"[:ERROR_TRUNCATION_CHARS],
            error_code=AgentErrorCode.EXECUTION_FAILED,
            failure_stage=FailureStage.EXEC,
            partial_findings=agent_ctx.partial.snapshot(),
            metrics=_metrics(),
        )
