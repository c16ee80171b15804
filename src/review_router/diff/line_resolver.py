"""Resolve (file, new-line) pairs to positions visible in the diff."""

from __future__ import annotations

import bisect
import logging
from collections import Counter
from dataclasses import dataclass

from review_router.constants import FileStatus
from review_router.diff.models import CanonicalDiff, CanonicalDiffFile
from review_router.diff.parser import normalize_diff_path
from review_router.results import Err, Ok
from review_router.validation import CanonicalPath, parse_canonical_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineCheck:
    """Outcome of validating one finding location."""

    valid: bool
    line: int | None
    reason: str | None = None
    is_addition: bool = False
    nearest_visible_line: int | None = None


class LineResolver:
    """Line-resolution index built once from a canonical diff.

    Old paths of renamed files resolve to their new path. When several
    old paths were renamed onto the same new path the mapping is
    ambiguous and none of them resolve.
    """

    def __init__(self, diff: CanonicalDiff) -> None:
        self._files: dict[str, CanonicalDiffFile] = {f.path: f for f in diff.files}
        self._sorted_lines: dict[str, list[int]] = {
            f.path: sorted(f.line_positions) for f in diff.files
        }
        self._old_to_new: dict[str, str] = {}
        self._ambiguous: set[str] = set()

        renames = [
            (normalize_diff_path(f.old_path), f.path)
            for f in diff.files
            if f.status == FileStatus.RENAMED and f.old_path
        ]
        targets = Counter(new for _, new in renames)
        for old, new in renames:
            self._old_to_new[old] = new
            if targets[new] > 1:
                self._ambiguous.update({old, new})

    # ── Paths ────────────────────────────────────────────

    @staticmethod
    def canonical(path: str) -> CanonicalPath | None:
        """Diff-prefix-stripped ``path`` if it is a valid repository path."""
        match parse_canonical_path(normalize_diff_path(path)):
            case Ok(value=canonical):
                return canonical
            case Err():
                return None

    def remap_path(self, path: str) -> str | None:
        """Return the canonical new path for ``path``, or None if invalid."""
        p = self.canonical(path)
        if p is None:
            return None
        if p in self._files:
            return p
        return self._old_to_new.get(p, p)

    def is_ambiguous_rename(self, path: str) -> bool:
        p = self.canonical(path)
        return p is not None and p in self._ambiguous

    def has_file(self, path: str) -> bool:
        return self.file(path) is not None

    def is_deleted(self, path: str) -> bool:
        p = self.remap_path(path)
        f = self._files.get(p) if p is not None else None
        return f is not None and f.is_deleted

    def file(self, path: str) -> CanonicalDiffFile | None:
        if self.is_ambiguous_rename(path):
            return None
        p = self.remap_path(path)
        return self._files.get(p) if p is not None else None

    # ── Lines ────────────────────────────────────────────

    def position(self, path: str, line: int) -> int | None:
        """Diff position of ``line`` in the new file, or None if not visible."""
        f = self.file(path)
        if f is None or not f.parseable or f.is_deleted:
            return None
        return f.line_positions.get(line)

    def is_visible(self, path: str, line: int) -> bool:
        return self.position(path, line) is not None

    def nearest_visible_line(self, path: str, line: int) -> int | None:
        f = self.file(path)
        if f is None:
            return None
        lines = self._sorted_lines.get(f.path, [])
        if not lines:
            return None
        idx = bisect.bisect_left(lines, line)
        candidates = lines[max(idx - 1, 0): idx + 1]
        return min(candidates, key=lambda c: (abs(c - line), c))

    def check(
        self,
        path: str,
        line: int | None,
        *,
        additions_only: bool = False,
    ) -> LineCheck:
        """Validate a location; file-level locations are always valid."""
        if self.canonical(path) is None:
            return LineCheck(valid=False, line=line, reason="invalid path")
        if self.is_ambiguous_rename(path):
            return LineCheck(valid=False, line=line, reason="ambiguous rename")
        f = self.file(path)
        if f is None:
            return LineCheck(valid=False, line=line, reason="file not in diff")
        if line is None:
            return LineCheck(valid=True, line=None)
        if f.is_deleted:
            return LineCheck(valid=False, line=line, reason="file deleted")
        if not f.parseable:
            return LineCheck(valid=False, line=line, reason="file diff unparseable")
        is_addition = line in f.added_lines
        if line not in f.line_positions or (additions_only and not is_addition):
            return LineCheck(
                valid=False,
                line=line,
                reason="line not in diff",
                nearest_visible_line=self.nearest_visible_line(path, line),
            )
        return LineCheck(valid=True, line=line, is_addition=is_addition)

    def file_summary(self, path: str) -> str:
        f = self.file(path)
        if f is None:
            return f"{path}: not in diff"
        return (
            f"{f.path}: {f.status} +{f.additions}/-{f.deletions}, "
            f"{len(f.hunks)} hunk(s), {len(f.line_positions)} visible line(s)"
        )
