"""Checks that must pass before any agent runs.

Order: trust gate, then file count, then budget. Only the first two
are fatal; an over-budget PR still runs, but paid LLM passes are
skipped. :func:`trust_gate` is also exposed on its own so a run can
reject an untrusted PR before reading any of its files.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from review_router.budget import (
    BudgetCheck,
    BudgetContext,
    check_budget,
    check_monthly_budget,
    estimate_cost,
)
from review_router.config import ReviewConfig
from review_router.diff.models import FileChange
from review_router.errors import ValidationError, ValidationErrorCode
from review_router.results import Err, Ok, Result
from review_router.trust import PullRequestContext, TrustResult, check_trust

logger = logging.getLogger(__name__)

TRUST_GATE = "trust"
FILES_GATE = "files"


@dataclass(frozen=True)
class PreflightOk:
    trust: TrustResult
    budget: BudgetCheck
    budget_context: BudgetContext

    @property
    def paid_llm_allowed(self) -> bool:
        return self.budget.allowed


def trust_gate(
    pr: PullRequestContext, config: ReviewConfig
) -> Result[TrustResult, ValidationError]:
    """Fatal trust check; runs before anything reads the PR's files."""
    trust = check_trust(pr, config)
    if trust.trusted:
        return Ok(trust)
    logger.info("event=preflight_untrusted pr=%d reason=%s", pr.number, trust.reason)
    return Err(
        ValidationError(
            trust.reason or "Pull request is not trusted",
            ValidationErrorCode.CONSTRAINT_VIOLATED,
            {"gate": TRUST_GATE, "pr": pr.number},
        )
    )


def run_preflight(
    pr: PullRequestContext,
    config: ReviewConfig,
    changes: Sequence[FileChange],
    diff_lines: int,
    *,
    estimated_tokens: int = 0,
    monthly_spend_usd: float = 0.0,
    trust: TrustResult | None = None,
) -> Result[PreflightOk, ValidationError]:
    """``trust`` is the result of an earlier :func:`trust_gate`, if any."""
    if trust is None:
        match trust_gate(pr, config):
            case Ok(value=checked):
                trust = checked
            case Err() as rejected:
                return rejected

    if not changes:
        return Err(
            ValidationError(
                "No files to review",
                ValidationErrorCode.INVALID_INPUT,
                {"gate": FILES_GATE, "pr": pr.number},
            )
        )

    context = BudgetContext(
        file_count=len(changes),
        diff_lines=diff_lines,
        estimated_tokens=estimated_tokens,
    )
    budget = check_budget(context, config.limits)
    if budget.allowed:
        budget = check_monthly_budget(
            monthly_spend_usd,
            estimate_cost(estimated_tokens).usd,
            config.limits,
        )
    if not budget.allowed:
        logger.warning(
            "event=preflight_budget_exceeded pr=%d reason=%s", pr.number, budget.reason
        )

    logger.info(
        "event=preflight_ok pr=%d files=%d lines=%d tokens=%d",
        pr.number,
        len(changes),
        diff_lines,
        estimated_tokens,
    )
    return Ok(PreflightOk(trust=trust, budget=budget, budget_context=context))
