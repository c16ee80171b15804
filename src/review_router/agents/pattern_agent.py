"""Regex rule scanner over added lines, run in a preemptible process.

Rule patterns may come from repository configuration, i.e. from the
pull request itself, so evaluation is treated as untrusted CPU-bound
work and isolated with :func:`run_isolated`.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from review_router.agents.base import AgentContext
from review_router.agents.isolation import Emit, run_isolated
from review_router.constants import FailureStage, Severity
from review_router.diff.models import CanonicalDiffFile
from review_router.errors import AgentErrorCode
from review_router.models import (
    AgentFailure,
    AgentMetrics,
    AgentResult,
    AgentSuccess,
    Finding,
)
from review_router.validation import is_canonical_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternRule:
    rule_id: str
    pattern: str
    message: str
    severity: Severity = Severity.WARNING


DEFAULT_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        rule_id="hardcoded-aws-key",
        pattern=r"AKIA[0-9A-Z]{16}",
        message="Possible hardcoded AWS access key",
        severity=Severity.ERROR,
    ),
    PatternRule(
        rule_id="private-key-block",
        pattern=r"-----BEGIN (?:RSA |EC |OPENSSH )?PRIVATE KEY-----",
        message="Private key material committed",
        severity=Severity.ERROR,
    ),
    PatternRule(
        rule_id="python-eval",
        pattern=r"\beval\s*\(",
        message="Use of eval() on dynamic input",
        severity=Severity.WARNING,
    ),
    PatternRule(
        rule_id="debugger-statement",
        pattern=r"\b(?:breakpoint\(\)|pdb\.set_trace\(\)|debugger;)",
        message="Debugger statement left in code",
        severity=Severity.INFO,
    ),
)


def _added_lines(f: CanonicalDiffFile) -> list[tuple[int, str]]:
    """(new_line, text) for every added line of a file."""
    out: list[tuple[int, str]] = []
    for hunk in f.hunks:
        line_no = hunk.new_start
        for raw in hunk.lines:
            if raw.startswith("+"):
                out.append((line_no, raw[1:]))
                line_no += 1
            elif not raw.startswith("-"):
                line_no += 1
    return out


def scan_added_lines(
    emit: Emit,
    rules: Sequence[tuple[str, str, str, str]],
    files: Sequence[tuple[str, Sequence[tuple[int, str]]]],
) -> int:
    """Worker entry point: emit one dict per match, return match count.

    Runs in the child process; arguments and emitted items are plain
    tuples and dicts so they pickle cheaply.
    """
    compiled = [(rid, re.compile(pat), msg, sev) for rid, pat, msg, sev in rules]
    count = 0
    for path, lines in files:
        for line_no, text in lines:
            for rule_id, regex, message, severity in compiled:
                if regex.search(text):
                    emit({
                        "file": path,
                        "line": line_no,
                        "rule_id": rule_id,
                        "message": message,
                        "severity": severity,
                    })
                    count += 1
    return count


class PatternAgent:
    """Static regex agent; no LLM, no network."""

    def __init__(
        self,
        rules: Sequence[PatternRule] = DEFAULT_RULES,
        *,
        agent_id: str = "pattern",
        extensions: Sequence[str] | None = None,
    ) -> None:
        self._rules = tuple(rules)
        self._id = agent_id
        self._extensions = tuple(extensions) if extensions else None

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return "Pattern Scanner"

    @property
    def uses_llm(self) -> bool:
        return False

    def supports(self, file: CanonicalDiffFile) -> bool:
        if file.is_deleted or file.is_binary or not file.parseable:
            return False
        if not is_canonical_path(file.path):
            return False
        if self._extensions is None:
            return True
        return file.path.endswith(self._extensions)

    def _to_finding(self, item: dict[str, Any]) -> Finding:
        return Finding(
            severity=Severity(item["severity"]),
            file=item["file"],
            line=item["line"],
            message=item["message"],
            rule_id=item["rule_id"],
            source_agent=self._id,
        )

    async def run(self, context: AgentContext) -> AgentResult:
        start = time.monotonic()
        files = [f for f in context.files if self.supports(f)]

        def _metrics() -> AgentMetrics:
            return AgentMetrics(
                duration_ms=(time.monotonic() - start) * 1000,
                files_processed=len(files),
            )

        bad = [r.rule_id for r in self._rules if not _compiles(r.pattern)]
        if bad:
            return AgentFailure(
                agent_id=self._id,
                error=f"invalid rule pattern(s): {', '.join(bad)}",
                error_code=AgentErrorCode.PARSE_ERROR,
                failure_stage=FailureStage.PREFLIGHT,
                metrics=_metrics(),
            )

        rules = [
            (r.rule_id, r.pattern, r.message, str(r.severity)) for r in self._rules
        ]
        payload = [(f.path, _added_lines(f)) for f in files]

        def _on_item(item: Any) -> None:
            context.partial.report(self._to_finding(item))

        outcome = await run_isolated(
            scan_added_lines,
            (rules, payload),
            deadline_seconds=context.timeout_seconds,
            on_item=_on_item,
        )

        if outcome.timed_out:
            return AgentFailure(
                agent_id=self._id,
                error="pattern scan exceeded deadline",
                error_code=AgentErrorCode.TIMEOUT,
                failure_stage=FailureStage.TIMEOUT,
                partial_findings=context.partial.snapshot(),
                metrics=_metrics(),
            )
        if outcome.error is not None:
            return AgentFailure(
                agent_id=self._id,
                error=outcome.error,
                error_code=AgentErrorCode.EXECUTION_FAILED,
                failure_stage=FailureStage.EXEC,
                partial_findings=context.partial.snapshot(),
                metrics=_metrics(),
            )
        logger.info(
            "event=pattern_scan_done agent=%s files=%d matches=%d",
            self._id,
            len(files),
            len(outcome.items),
        )
        return AgentSuccess(
            agent_id=self._id,
            findings=[self._to_finding(i) for i in outcome.items],
            metrics=_metrics(),
        )


def _compiles(pattern: str) -> bool:
    try:
        re.compile(pattern)
    except re.error:
        return False
    return True
