"""Unified-diff canonicalization.

Turns raw ``git diff`` text plus the acquisition layer's change list
into :class:`CanonicalDiff`. Parse failures are scoped to a single
file: a malformed hunk header marks that file unparseable and the rest
of the diff is still processed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from review_router.constants import FileStatus
from review_router.diff.models import (
    CanonicalDiff,
    CanonicalDiffFile,
    FileChange,
    Hunk,
)
from review_router.results import Err, Ok, Result
from review_router.validation import normalize_path

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(
    r"^@@\s+-(\d+)(?:,(\d+))?\s+\+(\d+)(?:,(\d+))?\s+@@"
)
_DIFF_GIT_RE = re.compile(r"^diff --git (?:\"?a/)?(.+?)\"? (?:\"?b/)?(.+?)\"?$")
_PATH_PREFIXES = ("a/", "b/", "./")


def normalize_diff_path(path: str) -> str:
    """Strip ``a/``, ``b/``, ``./`` and leading ``/`` from a diff path."""
    p = normalize_path(path.strip())
    for prefix in _PATH_PREFIXES:
        if p.startswith(prefix):
            p = p[len(prefix):]
            break
    return p.lstrip("/")


@dataclass
class _RawFilePatch:
    path: str
    old_path: str | None = None
    status: FileStatus = FileStatus.MODIFIED
    is_binary: bool = False
    patch_lines: list[str] = field(default_factory=lambda: list[str]())

    @property
    def patch(self) -> str | None:
        return "\n".join(self.patch_lines) if self.patch_lines else None


def split_unified_diff(raw_diff: str) -> list[_RawFilePatch]:
    """Split a multi-file ``git diff`` into per-file header+patch blocks."""
    files: list[_RawFilePatch] = []
    current: _RawFilePatch | None = None
    in_body = False

    for line in raw_diff.splitlines():
        if line.startswith("diff --git "):
            match = _DIFF_GIT_RE.match(line)
            new_path = normalize_diff_path(match.group(2)) if match else ""
            old_path = normalize_diff_path(match.group(1)) if match else None
            current = _RawFilePatch(path=new_path, old_path=old_path)
            files.append(current)
            in_body = False
            continue
        if current is None:
            continue
        if in_body:
            current.patch_lines.append(line)
            continue

        if line.startswith("@@"):
            in_body = True
            current.patch_lines.append(line)
        elif line.startswith("new file mode"):
            current.status = FileStatus.ADDED
        elif line.startswith("deleted file mode"):
            current.status = FileStatus.DELETED
        elif line.startswith("rename from "):
            current.old_path = normalize_diff_path(line[len("rename from "):])
            current.status = FileStatus.RENAMED
        elif line.startswith("rename to "):
            current.path = normalize_diff_path(line[len("rename to "):])
            current.status = FileStatus.RENAMED
        elif line.startswith("Binary files ") or line.startswith("GIT binary patch"):
            current.is_binary = True
        elif line.startswith("+++ ") and line[4:].strip() != "/dev/null":
            current.path = normalize_diff_path(line[4:])

    for f in files:
        if f.status != FileStatus.RENAMED:
            f.old_path = None
    return files


@dataclass(frozen=True)
class ParsedHunks:
    hunks: tuple[Hunk, ...]
    line_positions: dict[int, int]
    added_lines: frozenset[int]
    additions: int
    deletions: int


def parse_hunks(patch: str) -> Result[ParsedHunks, str]:
    """Walk hunk bodies and map visible new-file lines to diff positions.

    ``+`` advances the new-line counter, ``-`` the old one, context
    advances both, and ``\\ No newline`` markers are skipped.
    """
    hunks: list[Hunk] = []
    positions: dict[int, int] = {}
    added: set[int] = set()
    additions = 0
    deletions = 0

    header: tuple[int, int, int, int] | None = None
    body: list[str] = []
    new_line = 0
    position = 0
    seen_first = False
    remaining_old = remaining_new = 0

    def _close() -> None:
        if header is not None:
            hunks.append(Hunk(*header, lines=tuple(body)))

    for raw in patch.splitlines():
        if raw.startswith("@@"):
            match = HUNK_HEADER_RE.match(raw)
            if match is None:
                return Err(f"malformed hunk header: {raw[:80]!r}")
            _close()
            old_start, old_len, new_start, new_len = match.groups()
            header = (
                int(old_start),
                int(old_len) if old_len is not None else 1,
                int(new_start),
                int(new_len) if new_len is not None else 1,
            )
            body = []
            new_line = header[2]
            remaining_old, remaining_new = header[1], header[3]
            if seen_first:
                position += 1
            seen_first = True
            continue

        if header is None:
            continue

        prefix = raw[:1]
        if prefix == "\\":
            continue
        if remaining_old <= 0 and remaining_new <= 0:
            # Trailing text after the hunk declared its full length.
            continue
        position += 1
        body.append(raw)
        if prefix == "+":
            positions[new_line] = position
            added.add(new_line)
            additions += 1
            new_line += 1
            remaining_new -= 1
        elif prefix == "-":
            deletions += 1
            remaining_old -= 1
        elif prefix in (" ", ""):
            positions[new_line] = position
            new_line += 1
            remaining_old -= 1
            remaining_new -= 1
        else:
            return Err(f"unexpected line in hunk body: {raw[:80]!r}")

    _close()
    return Ok(
        ParsedHunks(
            hunks=tuple(hunks),
            line_positions=positions,
            added_lines=frozenset(added),
            additions=additions,
            deletions=deletions,
        )
    )


def _canonical_file(
    change: FileChange, raw: _RawFilePatch | None
) -> CanonicalDiffFile:
    path = normalize_diff_path(change.path)
    old_path = change.old_path or (raw.old_path if raw else None)
    old_path = normalize_diff_path(old_path) if old_path else None
    is_binary = bool(raw and raw.is_binary)
    patch = change.patch if change.patch is not None else (raw.patch if raw else None)

    # Deleted files never get line mappings; binary files have no patch.
    if change.status == FileStatus.DELETED or is_binary or not patch:
        return CanonicalDiffFile(
            path=path,
            status=change.status,
            additions=change.additions,
            deletions=change.deletions,
            old_path=old_path,
            is_binary=is_binary,
        )

    match parse_hunks(patch):
        case Ok(value=parsed):
            return CanonicalDiffFile(
                path=path,
                status=change.status,
                additions=change.additions or parsed.additions,
                deletions=change.deletions or parsed.deletions,
                old_path=old_path,
                hunks=parsed.hunks,
                line_positions=parsed.line_positions,
                added_lines=parsed.added_lines,
            )
        case Err(error=reason):
            logger.warning(
                "event=diff_file_unparseable file=%s reason=%s", path, reason
            )
            return CanonicalDiffFile(
                path=path,
                status=change.status,
                additions=change.additions,
                deletions=change.deletions,
                old_path=old_path,
                parseable=False,
                parse_error=reason,
            )


def changes_from_diff(raw_diff: str) -> list[FileChange]:
    """Derive a change list when acquisition only supplied diff text."""
    changes: list[FileChange] = []
    for raw in split_unified_diff(raw_diff):
        additions = deletions = 0
        if raw.patch:
            for line in raw.patch_lines:
                if line.startswith("+"):
                    additions += 1
                elif line.startswith("-"):
                    deletions += 1
        changes.append(
            FileChange(
                path=raw.path,
                status=raw.status,
                additions=additions,
                deletions=deletions,
                old_path=raw.old_path,
            )
        )
    return changes


def canonicalize_diff(
    raw_diff: str,
    changes: list[FileChange] | None = None,
    *,
    max_diff_lines: int | None = None,
) -> CanonicalDiff:
    """Build the canonical diff, applying the changed-line ceiling.

    Files are admitted in alphabetical order. Once the running total
    would exceed ``max_diff_lines``, that file and every later one is
    recorded in ``not_analyzed``.
    """
    raw_by_path = {r.path: r for r in split_unified_diff(raw_diff)}
    if changes is None:
        changes = changes_from_diff(raw_diff)

    ordered = sorted(changes, key=lambda c: normalize_diff_path(c.path))
    files: list[CanonicalDiffFile] = []
    not_analyzed: list[str] = []
    total = 0
    for change in ordered:
        path = normalize_diff_path(change.path)
        if not_analyzed or (
            max_diff_lines is not None
            and total + change.changed_lines > max_diff_lines
        ):
            not_analyzed.append(path)
            continue
        total += change.changed_lines
        files.append(_canonical_file(change, raw_by_path.get(path)))

    if not_analyzed:
        logger.warning(
            "event=diff_truncated analyzed=%d not_analyzed=%d ceiling=%s",
            len(files),
            len(not_analyzed),
            max_diff_lines,
        )
    return CanonicalDiff(files=tuple(files), not_analyzed=tuple(not_analyzed))
