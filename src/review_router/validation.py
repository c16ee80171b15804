"""Branded string types that can only be produced by validation.

``SafeGitRef`` and ``CanonicalPath`` are ``NewType`` brands over
``str``. The only supported way to obtain one is ``parse_*``, which
returns a :class:`Result`. The ``is_*`` guards are defined as "parse
returns Ok" so the two can never disagree.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import NewType

from review_router.errors import ValidationError, ValidationErrorCode
from review_router.results import Err, Ok, Result

SafeGitRef = NewType("SafeGitRef", str)
CanonicalPath = NewType("CanonicalPath", str)

SAFE_GIT_REF_MAX_LENGTH = 256
SAFE_GIT_REF_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-_/.]*$")
_GIT_REF_FORBIDDEN: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\.\."), "path traversal"),
    (re.compile(r"^-"), "leading dash"),
    (re.compile(r"[;&|`$]"), "shell metacharacter"),
    (re.compile(r"\s"), "whitespace"),
)

CANONICAL_PATH_MAX_LENGTH = 4096
CANONICAL_PATH_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-/\\]+$")
_DRIVE_LETTER_RE = re.compile(r"^[a-zA-Z]:")
_SLASH_RUN_RE = re.compile(r"/+")


def _invalid(
    message: str,
    code: ValidationErrorCode,
    field: str,
    value: object,
    constraint: str,
) -> Err[ValidationError]:
    return Err(
        ValidationError(
            message,
            code,
            {"field": field, "value": value, "constraint": constraint},
        )
    )


# ── SafeGitRef ───────────────────────────────────────────


def parse_git_ref(value: object) -> Result[SafeGitRef, ValidationError]:
    """Validate a git ref (branch, tag or SHA) for safe shell use."""
    if not isinstance(value, str):
        return _invalid(
            "Invalid SafeGitRef: expected string",
            ValidationErrorCode.INVALID_INPUT,
            "gitRef",
            value,
            "type",
        )
    if not value:
        return _invalid(
            "Invalid SafeGitRef: Git reference cannot be empty",
            ValidationErrorCode.INVALID_INPUT,
            "gitRef",
            value,
            "too_small",
        )
    if len(value) > SAFE_GIT_REF_MAX_LENGTH:
        return _invalid(
            "Invalid SafeGitRef: Git reference cannot exceed "
            f"{SAFE_GIT_REF_MAX_LENGTH} characters",
            ValidationErrorCode.INVALID_INPUT,
            "gitRef",
            value,
            "too_big",
        )
    for pattern, label in _GIT_REF_FORBIDDEN:
        if pattern.search(value):
            return _invalid(
                f"Git reference contains forbidden pattern: {label}",
                ValidationErrorCode.INVALID_GIT_REF,
                "gitRef",
                value,
                "no-forbidden-patterns",
            )
    if not SAFE_GIT_REF_PATTERN.match(value):
        return _invalid(
            "Invalid SafeGitRef: Git reference contains invalid characters",
            ValidationErrorCode.INVALID_INPUT,
            "gitRef",
            value,
            "invalid_string",
        )
    return Ok(SafeGitRef(value))


def is_safe_git_ref(value: object) -> bool:
    return isinstance(parse_git_ref(value), Ok)


# ── CanonicalPath ────────────────────────────────────────


def normalize_path(path: str) -> str:
    """Convert backslashes to ``/`` and collapse repeated separators."""
    return _SLASH_RUN_RE.sub("/", path.replace("\\", "/"))


def has_traversal(path: str) -> bool:
    """True for a ``..`` segment, an absolute path or a drive letter."""
    normalized = normalize_path(path)
    return (
        ".." in normalized.split("/")
        or normalized.startswith("/")
        or bool(_DRIVE_LETTER_RE.match(path))
    )


def parse_canonical_path(
    value: object,
) -> Result[CanonicalPath, ValidationError]:
    """Validate and normalize a repository-relative path."""
    if not isinstance(value, str):
        return _invalid(
            "Invalid path: expected string",
            ValidationErrorCode.INVALID_PATH,
            "path",
            value,
            "type",
        )
    if not value:
        return _invalid(
            "Invalid path: Path cannot be empty",
            ValidationErrorCode.INVALID_PATH,
            "path",
            value,
            "too_small",
        )
    if len(value) > CANONICAL_PATH_MAX_LENGTH:
        return _invalid(
            f"Invalid path: Path cannot exceed {CANONICAL_PATH_MAX_LENGTH} characters",
            ValidationErrorCode.INVALID_PATH,
            "path",
            value,
            "too_big",
        )
    normalized = normalize_path(value)
    while normalized.startswith("./"):
        normalized = normalized[2:]
    if not normalized:
        return _invalid(
            "Invalid path: Path cannot be empty",
            ValidationErrorCode.INVALID_PATH,
            "path",
            value,
            "too_small",
        )
    if not CANONICAL_PATH_PATTERN.match(normalized):
        return _invalid(
            "Path contains invalid characters",
            ValidationErrorCode.INVALID_PATH,
            "path",
            value,
            "valid-characters",
        )
    if has_traversal(value):
        return _invalid(
            "Path contains directory traversal",
            ValidationErrorCode.INVALID_PATH,
            "path",
            value,
            "no-traversal",
        )
    return Ok(CanonicalPath(normalized))


def is_canonical_path(value: object) -> bool:
    return isinstance(parse_canonical_path(value), Ok)


def normalize_repo_path(path: str) -> str:
    """:func:`parse_canonical_path` for callers that raise instead.

    Surrounding whitespace is ignored. Raises ``ValueError`` with the
    validation message when the path is rejected.
    """
    match parse_canonical_path(path.strip()):
        case Ok(value=canonical):
            return canonical
        case Err(error=error):
            msg = f"{error.message}: {path!r}"
            raise ValueError(msg)


# ── Helper Namespaces ────────────────────────────────────


@dataclass(frozen=True)
class BrandHelpers[B: str]:
    """Bundle of parse/unbrand/is for one branded type.

    There is no unchecked constructor: a branded value comes from
    ``parse`` or not at all.
    """

    name: str
    parse: Callable[[object], Result[B, ValidationError]]

    def unbrand(self, branded: B) -> str:
        return str(branded)

    def is_(self, value: object) -> bool:
        return isinstance(self.parse(value), Ok)


SafeGitRefHelpers = BrandHelpers[SafeGitRef](
    name="SafeGitRef", parse=parse_git_ref
)
CanonicalPathHelpers = BrandHelpers[CanonicalPath](
    name="CanonicalPath", parse=parse_canonical_path
)
