"""Token and cost budgeting.

``check_budget`` and ``check_monthly_budget`` are pre-flight checks on
the whole PR. ``BudgetLedger`` is the run's single source of truth for
remaining spend; only the orchestrator debits it, once per completed
agent, with the agent's actual reported usage.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from review_router.config import Limits
from review_router.constants import (
    INPUT_COST_PER_1K_TOKENS,
    OUTPUT_COST_PER_1K_TOKENS,
    OUTPUT_TOKEN_RATIO,
    estimate_tokens,
)
from review_router.models import AgentMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetContext:
    file_count: int
    diff_lines: int
    estimated_tokens: int


@dataclass(frozen=True)
class BudgetCheck:
    allowed: bool
    reason: str | None = None
    reduced_max_files: int | None = None
    reduced_max_lines: int | None = None


@dataclass(frozen=True)
class CostEstimate:
    tokens: int = 0
    usd: float = 0.0
    input_usd: float = 0.0
    output_usd: float = 0.0

    def __add__(self, other: CostEstimate) -> CostEstimate:
        return CostEstimate(
            tokens=self.tokens + other.tokens,
            usd=self.usd + other.usd,
            input_usd=self.input_usd + other.input_usd,
            output_usd=self.output_usd + other.output_usd,
        )


ZERO_COST = CostEstimate()


def estimate_cost(tokens: int) -> CostEstimate:
    """Approximate USD for ``tokens`` input tokens (GPT-4 class pricing)."""
    input_usd = (tokens / 1000) * INPUT_COST_PER_1K_TOKENS
    output_tokens = tokens * OUTPUT_TOKEN_RATIO
    output_usd = (output_tokens / 1000) * OUTPUT_COST_PER_1K_TOKENS
    return CostEstimate(
        tokens=tokens,
        usd=input_usd + output_usd,
        input_usd=input_usd,
        output_usd=output_usd,
    )


def estimate_text_cost(text: str) -> CostEstimate:
    return estimate_cost(estimate_tokens(text))


def check_budget(context: BudgetContext, limits: Limits) -> BudgetCheck:
    """Checks files, then lines, then tokens, then USD."""
    if context.file_count > limits.max_files:
        return BudgetCheck(
            allowed=False,
            reason=(
                f"PR has {context.file_count} files, exceeds limit of "
                f"{limits.max_files}"
            ),
            reduced_max_files=limits.max_files,
        )
    if context.diff_lines > limits.max_diff_lines:
        return BudgetCheck(
            allowed=False,
            reason=(
                f"PR has {context.diff_lines} changed lines, exceeds limit of "
                f"{limits.max_diff_lines}"
            ),
            reduced_max_lines=limits.max_diff_lines,
        )
    if context.estimated_tokens > limits.max_tokens_per_pr:
        return BudgetCheck(
            allowed=False,
            reason=(
                f"Estimated {context.estimated_tokens} tokens, exceeds limit of "
                f"{limits.max_tokens_per_pr}"
            ),
        )
    estimate = estimate_cost(context.estimated_tokens)
    if estimate.usd > limits.max_usd_per_pr:
        return BudgetCheck(
            allowed=False,
            reason=(
                f"Estimated cost ${estimate.usd:.2f} exceeds limit of "
                f"${limits.max_usd_per_pr:.2f}"
            ),
        )
    return BudgetCheck(allowed=True)


def check_monthly_budget(
    spent_usd: float, estimated_usd: float, limits: Limits
) -> BudgetCheck:
    projected = spent_usd + estimated_usd
    if projected > limits.monthly_budget_usd:
        return BudgetCheck(
            allowed=False,
            reason=(
                f"Monthly budget exhausted. Current: ${spent_usd:.2f}, "
                f"Limit: ${limits.monthly_budget_usd:.2f}"
            ),
        )
    return BudgetCheck(allowed=True)


@dataclass(frozen=True)
class LedgerEntry:
    agent_id: str
    tokens: int
    usd: float
    duration_ms: float


@dataclass
class BudgetLedger:
    """Running budget for one review run.

    Debits are serialized through an ``asyncio.Lock``. Remaining values
    may go negative: an agent that overran is still charged in full, and
    a negative remainder means the budget is exhausted.
    """

    max_tokens: int
    max_usd: float
    max_seconds: float | None = None
    started_at: float = field(default_factory=time.monotonic)
    tokens_used: int = 0
    usd_used: float = 0.0
    entries: list[LedgerEntry] = field(default_factory=lambda: list[LedgerEntry]())
    _lock: asyncio.Lock = field(
        default_factory=asyncio.Lock, init=False, repr=False
    )

    @classmethod
    def from_limits(
        cls, limits: Limits, *, deadline_seconds: float | None = None
    ) -> BudgetLedger:
        seconds = limits.max_wall_seconds
        if deadline_seconds is not None:
            seconds = (
                deadline_seconds if seconds is None else min(seconds, deadline_seconds)
            )
        return cls(
            max_tokens=limits.max_tokens_per_pr,
            max_usd=limits.max_usd_per_pr,
            max_seconds=seconds,
        )

    @property
    def remaining_tokens(self) -> int:
        return self.max_tokens - self.tokens_used

    @property
    def remaining_usd(self) -> float:
        return self.max_usd - self.usd_used

    @property
    def remaining_seconds(self) -> float | None:
        if self.max_seconds is None:
            return None
        return self.max_seconds - (time.monotonic() - self.started_at)

    @property
    def exhausted(self) -> bool:
        seconds = self.remaining_seconds
        return (
            self.remaining_tokens < 0
            or self.remaining_usd < 0
            or (seconds is not None and seconds <= 0)
        )

    def can_afford(self, estimate: CostEstimate) -> BudgetCheck:
        """Compare an estimate against what is left, without reserving it."""
        if self.exhausted:
            return BudgetCheck(allowed=False, reason="budget exhausted")
        if estimate.tokens > self.remaining_tokens:
            return BudgetCheck(
                allowed=False,
                reason=(
                    f"estimated {estimate.tokens} tokens, "
                    f"{self.remaining_tokens} remaining"
                ),
            )
        if estimate.usd > self.remaining_usd:
            return BudgetCheck(
                allowed=False,
                reason=(
                    f"estimated ${estimate.usd:.4f}, "
                    f"${self.remaining_usd:.4f} remaining"
                ),
            )
        return BudgetCheck(allowed=True)

    async def debit(self, agent_id: str, metrics: AgentMetrics) -> None:
        """Charge an agent's actual usage after it completes."""
        async with self._lock:
            self.tokens_used += metrics.tokens_used
            self.usd_used += metrics.estimated_cost_usd
            self.entries.append(
                LedgerEntry(
                    agent_id=agent_id,
                    tokens=metrics.tokens_used,
                    usd=metrics.estimated_cost_usd,
                    duration_ms=metrics.duration_ms,
                )
            )
            if self.exhausted:
                logger.warning(
                    "event=budget_exhausted agent=%s tokens_used=%d usd_used=%.4f",
                    agent_id,
                    self.tokens_used,
                    self.usd_used,
                )
