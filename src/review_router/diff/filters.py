"""Path exclusion via ``.reviewignore`` and configured path filters.

``.reviewignore`` uses .gitignore syntax (``#`` comments, ``!``
negation, ``**`` globs, trailing ``/`` for directories), evaluated with
pathspec the same way a .gitignore would be.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pathspec

from review_router.config import PathFilters
from review_router.diff.models import FileChange

logger = logging.getLogger(__name__)

REVIEWIGNORE_FILENAME = ".reviewignore"


def load_reviewignore(repo_root: Path) -> pathspec.PathSpec | None:
    """Parse ``.reviewignore`` at the repo root, if present."""
    ignore_path = repo_root / REVIEWIGNORE_FILENAME
    if not ignore_path.is_file():
        return None
    try:
        lines = ignore_path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        logger.warning(
            "event=reviewignore_unreadable path=%s", ignore_path, exc_info=True
        )
        return None
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def filter_changes(
    changes: list[FileChange],
    *,
    ignore_spec: pathspec.PathSpec | None = None,
    path_filters: PathFilters | None = None,
) -> tuple[list[FileChange], list[str]]:
    """Return (kept, excluded paths).

    ``include`` globs, when given, restrict the set first; ``exclude``
    globs and ``.reviewignore`` then remove matches.
    """
    include = (
        pathspec.PathSpec.from_lines("gitwildmatch", path_filters.include)
        if path_filters and path_filters.include
        else None
    )
    exclude = (
        pathspec.PathSpec.from_lines("gitwildmatch", path_filters.exclude)
        if path_filters and path_filters.exclude
        else None
    )

    kept: list[FileChange] = []
    excluded: list[str] = []
    for change in changes:
        path = change.path
        if include is not None and not include.match_file(path):
            excluded.append(path)
        elif exclude is not None and exclude.match_file(path):
            excluded.append(path)
        elif ignore_spec is not None and ignore_spec.match_file(path):
            excluded.append(path)
        else:
            kept.append(change)

    if excluded:
        logger.info(
            "event=paths_excluded count=%d kept=%d", len(excluded), len(kept)
        )
    return kept, excluded
