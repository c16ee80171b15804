"""Final pass/fail decision for a review run."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from review_router.config import Gating
from review_router.constants import SEVERITY_RANK, Severity
from review_router.models import Finding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatingDecision:
    passed: bool
    reason: str | None = None
    blocking_count: int = 0


def is_blocking(severity: Severity, threshold: Severity) -> bool:
    """True when ``severity`` is at or above the failing threshold."""
    return SEVERITY_RANK[severity] >= SEVERITY_RANK[threshold]


def evaluate_gating(
    findings: Iterable[Finding],
    gating: Gating,
    required_failures: Sequence[str] = (),
) -> GatingDecision:
    """Decide the run outcome from complete findings only.

    Partial findings never trip the gate. With gating disabled the run
    always passes, even when a required pass produced nothing.
    """
    if not gating.enabled:
        return GatingDecision(passed=True)

    if required_failures:
        reason = f"Required pass(es) failed: {', '.join(required_failures)}"
        logger.warning("event=gating_failed reason=required_pass")
        return GatingDecision(passed=False, reason=reason)

    blocking = sum(
        1 for f in findings if is_blocking(f.severity, gating.fail_on_severity)
    )
    if blocking:
        logger.warning(
            "event=gating_failed reason=severity threshold=%s blocking=%d",
            gating.fail_on_severity,
            blocking,
        )
        return GatingDecision(
            passed=False,
            reason=(
                f"{blocking} finding(s) at or above "
                f"'{gating.fail_on_severity}' severity"
            ),
            blocking_count=blocking,
        )
    return GatingDecision(passed=True)
