"""Finding normalization and deduplication."""

from review_router.findings.normalize import (
    Bounded,
    NormalizedFindings,
    bound_findings,
    compute_fingerprint,
    dedup_complete,
    dedup_partial,
    normalize_findings,
    remap_findings,
    sort_findings,
)

__all__ = [
    "Bounded",
    "NormalizedFindings",
    "bound_findings",
    "compute_fingerprint",
    "dedup_complete",
    "dedup_partial",
    "normalize_findings",
    "remap_findings",
    "sort_findings",
]
