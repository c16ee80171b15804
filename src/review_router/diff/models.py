"""Value objects for the canonical diff model."""

from __future__ import annotations

from dataclasses import dataclass, field

from review_router.constants import FileStatus


@dataclass(frozen=True)
class FileChange:
    """One entry of the change list supplied by diff acquisition."""

    path: str
    status: FileStatus = FileStatus.MODIFIED
    additions: int = 0
    deletions: int = 0
    old_path: str | None = None
    patch: str | None = None

    @property
    def changed_lines(self) -> int:
        return self.additions + self.deletions


@dataclass(frozen=True)
class Hunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: tuple[str, ...] = ()


@dataclass(frozen=True)
class CanonicalDiffFile:
    """Normalized representation of one changed file.

    ``line_positions`` maps every added or context new-file line to its
    1-based position in the file's patch (the first line after the
    first hunk header is position 1; later hunk headers occupy a
    position of their own).
    """

    path: str
    status: FileStatus
    additions: int = 0
    deletions: int = 0
    old_path: str | None = None
    hunks: tuple[Hunk, ...] = ()
    line_positions: dict[int, int] = field(
        default_factory=lambda: dict[int, int](), compare=False
    )
    added_lines: frozenset[int] = frozenset()
    is_binary: bool = False
    parseable: bool = True
    parse_error: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.status == FileStatus.DELETED

    @property
    def changed_lines(self) -> int:
        return self.additions + self.deletions

    @property
    def patch_text(self) -> str:
        """Hunk bodies joined, without headers."""
        return "\n".join(line for h in self.hunks for line in h.lines)


@dataclass(frozen=True)
class CanonicalDiff:
    """All analyzed files plus the ones cut off by the line ceiling."""

    files: tuple[CanonicalDiffFile, ...] = ()
    not_analyzed: tuple[str, ...] = ()

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    @property
    def total_changed_lines(self) -> int:
        return sum(f.changed_lines for f in self.files)

    def get(self, path: str) -> CanonicalDiffFile | None:
        for f in self.files:
            if f.path == path:
                return f
        return None

    def reviewable_files(self) -> list[CanonicalDiffFile]:
        """Files an agent can meaningfully inspect (not deleted, not binary)."""
        return [f for f in self.files if not f.is_deleted and not f.is_binary]
