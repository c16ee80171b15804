"""Finding normalization: remap, fingerprint, dedup, sort, bound.

``complete`` and ``partial`` findings are processed separately and
never deduplicated against each other. Complete findings merge across
agents on fingerprint alone; partial findings stay agent-scoped.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from review_router.config import Reporting
from review_router.constants import (
    FINGERPRINT_LENGTH,
    MESSAGE_PREFIX_CHARS,
    SEVERITY_RANK,
    Severity,
)
from review_router.diff.line_resolver import LineResolver
from review_router.models import Finding

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_message(message: str) -> str:
    """Lowercased, whitespace-collapsed prefix used in fingerprints."""
    collapsed = _WHITESPACE_RE.sub(" ", message.strip().lower())
    return collapsed[:MESSAGE_PREFIX_CHARS]


def compute_fingerprint(finding: Finding) -> str:
    """sha256 of ``file:line-or-0:rule_id-or-"":message_prefix``, truncated."""
    data = (
        f"{finding.file}:{finding.line or 0}:{finding.rule_id or ''}:"
        f"{normalize_message(finding.message)}"
    )
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def with_fingerprint(finding: Finding) -> Finding:
    return finding.model_copy(update={"fingerprint": compute_fingerprint(finding)})


def remap_findings(
    findings: Iterable[Finding], resolver: LineResolver
) -> list[Finding]:
    """Anchor findings to the diff.

    Findings on files outside the diff are dropped. Findings on lines
    that are not visible are demoted to file-level, never discarded.
    """
    out: list[Finding] = []
    dropped = 0
    demoted = 0
    for finding in findings:
        diff_file = resolver.file(finding.file)
        if diff_file is None:
            dropped += 1
            continue
        remapped = finding
        if diff_file.path != finding.file:
            remapped = remapped.model_copy(update={"file": diff_file.path})
        if remapped.line is not None and not resolver.is_visible(
            remapped.file, remapped.line
        ):
            remapped = remapped.at_file_level()
            demoted += 1
        out.append(remapped)
    if dropped or demoted:
        logger.info(
            "event=findings_remapped kept=%d dropped=%d demoted=%d",
            len(out),
            dropped,
            demoted,
        )
    return out


def _sort_key(finding: Finding) -> tuple[int, str, int, int, str, str]:
    return (
        -SEVERITY_RANK[finding.severity],
        finding.file,
        0 if finding.line is None else 1,
        finding.line or 0,
        finding.source_agent,
        finding.fingerprint or "",
    )


def sort_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Severity desc, file, line (file-level first), agent."""
    return sorted(findings, key=_sort_key)


def dedup_complete(findings: Iterable[Finding]) -> list[Finding]:
    """Collapse on fingerprint, recording every contributing agent.

    Input is sorted first so the surviving entry (the highest-severity
    one) does not depend on agent completion order.
    """
    merged: dict[str, Finding] = {}
    agents: dict[str, set[str]] = {}
    for finding in sort_findings(with_fingerprint(f) for f in findings):
        fp = finding.fingerprint or ""
        contributors = agents.setdefault(fp, set())
        contributors.add(finding.source_agent)
        contributors.update(finding.contributing_agents)
        if fp not in merged:
            merged[fp] = finding
    return [
        f.model_copy(
            update={"contributing_agents": sorted(agents[f.fingerprint or ""])}
        )
        for f in merged.values()
    ]


def dedup_partial(findings: Iterable[Finding]) -> list[Finding]:
    """Collapse on ``(source_agent, fingerprint)``; first seen wins."""
    seen: set[tuple[str, str]] = set()
    out: list[Finding] = []
    for finding in map(with_fingerprint, findings):
        key = (finding.source_agent, finding.fingerprint or "")
        if key in seen:
            continue
        seen.add(key)
        out.append(finding)
    return sort_findings(out)


@dataclass(frozen=True)
class Bounded:
    """A truncated view plus how much was cut."""

    items: list[Finding] = field(default_factory=lambda: list[Finding]())
    omitted: int = 0

    @property
    def marker(self) -> str | None:
        if self.omitted <= 0:
            return None
        return f"+{self.omitted} more, see full log"


def bound_findings(findings: list[Finding], limit: int) -> Bounded:
    if len(findings) <= limit:
        return Bounded(items=list(findings))
    return Bounded(items=findings[:limit], omitted=len(findings) - limit)


@dataclass(frozen=True)
class NormalizedFindings:
    """Reportable output: full sorted sets plus bounded views."""

    complete: list[Finding] = field(default_factory=lambda: list[Finding]())
    partial: list[Finding] = field(default_factory=lambda: list[Finding]())
    inline: Bounded = field(default_factory=Bounded)
    annotations: Bounded = field(default_factory=Bounded)

    def count_by_severity(self) -> dict[str, int]:
        counts = {str(s): 0 for s in Severity}
        for finding in self.complete:
            counts[finding.severity] += 1
        return counts


def normalize_findings(
    complete: Iterable[Finding],
    partial: Iterable[Finding],
    resolver: LineResolver,
    reporting: Reporting,
) -> NormalizedFindings:
    final_complete = dedup_complete(remap_findings(complete, resolver))
    final_partial = dedup_partial(remap_findings(partial, resolver))
    anchored = [f for f in final_complete if f.line is not None]
    result = NormalizedFindings(
        complete=final_complete,
        partial=final_partial,
        inline=bound_findings(anchored, reporting.max_inline_comments),
        annotations=bound_findings(anchored, reporting.max_annotations),
    )
    logger.info(
        "event=findings_normalized complete=%d partial=%d inline=%d "
        "inline_omitted=%d",
        len(result.complete),
        len(result.partial),
        len(result.inline.items),
        result.inline.omitted,
    )
    return result
