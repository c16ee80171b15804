"""Diff canonicalization and line resolution."""

from review_router.diff.line_resolver import LineCheck, LineResolver
from review_router.diff.models import (
    CanonicalDiff,
    CanonicalDiffFile,
    FileChange,
    Hunk,
)
from review_router.diff.parser import (
    canonicalize_diff,
    changes_from_diff,
    normalize_diff_path,
    parse_hunks,
)

__all__ = [
    "CanonicalDiff",
    "CanonicalDiffFile",
    "FileChange",
    "Hunk",
    "LineCheck",
    "LineResolver",
    "canonicalize_diff",
    "changes_from_diff",
    "normalize_diff_path",
    "parse_hunks",
]
