"""End-to-end review run.

Phases:
  1. Trust gate: untrusted PRs stop before any file is read
  2. Filter: ``.reviewignore`` and configured path filters; a PR whose
     every file is filtered out is skipped, not failed
  3. Preflight: file count, budget
  4. Canonicalize: parse hunks, apply the changed-line ceiling
  5. Execute: passes and agents under the budget ledger
  6. Normalize: remap, dedup, sort, bound
  7. Gate and summarize
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

from review_router.agents.base import AgentRegistry
from review_router.budget import BudgetLedger
from review_router.cache.runner import CachedAgentRunner
from review_router.cache.store import FileCacheStore
from review_router.config import ReviewConfig, Settings
from review_router.constants import estimate_tokens
from review_router.diff.filters import filter_changes, load_reviewignore
from review_router.diff.line_resolver import LineResolver
from review_router.diff.models import FileChange
from review_router.diff.parser import canonicalize_diff, changes_from_diff
from review_router.errors import ReviewError
from review_router.findings.normalize import normalize_findings
from review_router.observability import emitters
from review_router.observability.dispatcher import TraceDispatcher
from review_router.pipeline.gating import evaluate_gating
from review_router.pipeline.orchestrator import (
    ExecutionContext,
    execute_all_passes,
)
from review_router.pipeline.preflight import run_preflight, trust_gate
from review_router.report.summary import RunSummary, SummaryStats
from review_router.results import Err, Ok, Result
from review_router.trust import PullRequestContext

logger = logging.getLogger(__name__)


class ReviewAborted(Exception):
    """Raised by :func:`run_review_or_raise`; ``__cause__`` is the typed error."""

    def __init__(self, error: ReviewError) -> None:
        super().__init__(f"Review aborted [{error.code}]: {error.message}")
        self.error = error


def _elapsed_ms(t0: float) -> float:
    return (time.monotonic() - t0) * 1000


async def run_review(
    pr: PullRequestContext,
    config: ReviewConfig,
    raw_diff: str,
    registry: AgentRegistry,
    *,
    changes: list[FileChange] | None = None,
    settings: Settings | None = None,
    repo_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    dispatcher: TraceDispatcher | None = None,
    store: FileCacheStore | None = None,
) -> Result[RunSummary, ReviewError]:
    """Run one review. ``Err`` only for fatal preflight conditions.

    Agent failures, timeouts and budget exhaustion are recorded in the
    returned summary; they never surface as ``Err``.
    """
    cfg = settings or Settings()
    repo = repo_path or Path.cwd()
    env = dict(os.environ) if environ is None else environ
    t0 = time.monotonic()
    trace_id = f"review_{pr.number}_{uuid.uuid4().hex[:8]}"
    config_hash = config.config_hash()

    if dispatcher is not None:
        await emitters.emit_run_start(dispatcher, trace_id, pr.number, config_hash)

    async def _abort(error: ReviewError) -> Err[ReviewError]:
        logger.warning(
            "event=review_aborted pr=%d code=%s reason=%s",
            pr.number,
            error.code,
            error.message,
        )
        if dispatcher is not None:
            await emitters.emit_error(
                dispatcher, trace_id, error.code, error.message
            )
            await emitters.emit_run_end(
                dispatcher,
                trace_id,
                _elapsed_ms(t0),
                RunSummary.from_error(error).status,
            )
        return Err(error)

    match trust_gate(pr, config):
        case Ok(value=trust):
            pass
        case Err(error=error):
            return await _abort(error)

    all_changes = changes if changes is not None else changes_from_diff(raw_diff)
    kept, excluded = filter_changes(
        all_changes,
        ignore_spec=load_reviewignore(repo),
        path_filters=config.path_filters,
    )
    if all_changes and not kept:
        logger.info(
            "event=review_skipped pr=%d reason=all_files_filtered excluded=%d",
            pr.number,
            len(excluded),
        )
        skipped = RunSummary.skipped(
            f"all {len(excluded)} changed file(s) excluded by path filters",
            stats=SummaryStats(
                pr=pr.number,
                head_sha=pr.head_sha,
                config_hash=config_hash,
                excluded_paths=excluded,
                duration_ms=_elapsed_ms(t0),
            ),
        )
        if dispatcher is not None:
            await emitters.emit_run_end(
                dispatcher, trace_id, skipped.summary.duration_ms, skipped.status
            )
        return Ok(skipped)

    preflight = run_preflight(
        pr,
        config,
        kept,
        sum(c.changed_lines for c in kept),
        estimated_tokens=estimate_tokens(raw_diff),
        monthly_spend_usd=cfg.monthly_spend_usd,
        trust=trust,
    )
    if isinstance(preflight, Err):
        return await _abort(preflight.error)

    diff = canonicalize_diff(
        raw_diff, kept, max_diff_lines=config.limits.max_diff_lines
    )

    runner: CachedAgentRunner | None = None
    if cfg.cache_enabled:
        runner = CachedAgentRunner(
            store
            or FileCacheStore(
                cfg.review_cache_dir, ttl=timedelta(hours=cfg.cache_ttl_hours)
            )
        )

    ctx = ExecutionContext(
        repo_path=repo,
        diff=diff,
        diff_text=raw_diff,
        config=config,
        settings=cfg,
        environ=env,
        pr_number=pr.number,
        head_sha=pr.head_sha,
        runner=runner,
        dispatcher=dispatcher,
        trace_id=trace_id,
        paid_llm_allowed=preflight.value.paid_llm_allowed,
    )
    ledger = BudgetLedger.from_limits(
        config.limits, deadline_seconds=cfg.run_deadline_seconds
    )
    executed = await execute_all_passes(config.passes, registry, ctx, ledger)

    normalized = normalize_findings(
        executed.complete_findings,
        executed.partial_findings,
        LineResolver(diff),
        config.reporting,
    )
    gating = evaluate_gating(
        normalized.complete, config.gating, executed.required_pass_failures
    )

    summary = RunSummary.from_run(
        executed,
        normalized,
        gating,
        not_analyzed=list(diff.not_analyzed),
        stats=SummaryStats(
            pr=pr.number,
            head_sha=pr.head_sha,
            config_hash=config_hash,
            excluded_paths=excluded,
            duration_ms=_elapsed_ms(t0),
        ),
    )
    logger.info(
        "event=review_done pr=%d status=%s findings=%d partial=%d "
        "duration_ms=%.0f",
        pr.number,
        summary.status,
        len(summary.findings),
        len(summary.partial_findings),
        summary.summary.duration_ms,
    )
    if dispatcher is not None:
        await emitters.emit_run_end(
            dispatcher, trace_id, summary.summary.duration_ms, summary.status
        )
    return Ok(summary)


async def run_review_or_raise(
    pr: PullRequestContext,
    config: ReviewConfig,
    raw_diff: str,
    registry: AgentRegistry,
    **kwargs: Any,
) -> RunSummary:
    """Exception-based boundary over :func:`run_review`."""
    match await run_review(pr, config, raw_diff, registry, **kwargs):
        case Ok(value=summary):
            return summary
        case Err(error=error):
            raise ReviewAborted(error) from error
