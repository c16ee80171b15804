"""Pull-request trust checks.

Pure functions: no network, no filesystem, no agents. The trust gate
runs before diff acquisition so untrusted input never costs budget.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from review_router.config import ReviewConfig
from review_router.errors import ValidationError, ValidationErrorCode
from review_router.results import Err, Ok, Result
from review_router.validation import SafeGitRef, parse_git_ref

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PullRequestContext:
    number: int
    head_repo: str
    base_repo: str
    author: str
    is_fork: bool
    is_draft: bool
    head_sha: SafeGitRef | None = None
    base_sha: SafeGitRef | None = None


@dataclass(frozen=True)
class TrustResult:
    trusted: bool
    reason: str | None = None


def check_trust(pr: PullRequestContext, config: ReviewConfig) -> TrustResult:
    """Drafts are always rejected; forks unless allowlisted."""
    if pr.is_draft:
        return TrustResult(trusted=False, reason="Skipping draft PR")

    if config.trusted_only and pr.is_fork:
        allow = set(config.fork_allowlist)
        if pr.head_repo in allow or pr.author in allow:
            logger.info(
                "event=fork_allowlisted pr=%d head_repo=%s author=%s",
                pr.number,
                pr.head_repo,
                pr.author,
            )
            return TrustResult(trusted=True)
        return TrustResult(
            trusted=False,
            reason=(
                f"Fork PRs are not trusted ({pr.head_repo} -> {pr.base_repo})"
            ),
        )

    return TrustResult(trusted=True)


def _optional_ref(value: object) -> Result[SafeGitRef | None, ValidationError]:
    if value in (None, ""):
        return Ok(None)
    return parse_git_ref(value)


def _invalid_payload(message: str, field: str) -> Err[ValidationError]:
    return Err(
        ValidationError(
            message,
            ValidationErrorCode.INVALID_INPUT,
            {"field": field},
        )
    )


def build_pr_context_github(
    payload: Mapping[str, Any],
) -> Result[PullRequestContext, ValidationError]:
    """Build context from a GitHub ``pull_request`` event payload."""
    pr = payload.get("pull_request")
    if not isinstance(pr, Mapping):
        return _invalid_payload("Event payload has no pull_request", "pull_request")
    try:
        head: Mapping[str, Any] = pr["head"]
        base: Mapping[str, Any] = pr["base"]
        number = int(pr["number"])
        base_repo = str(base["repo"]["full_name"])
        author = str(pr["user"]["login"])
    except (KeyError, TypeError, ValueError) as exc:
        return _invalid_payload(
            f"Malformed pull_request payload: {exc}", "pull_request"
        )

    head_repo_obj = head.get("repo") or {}
    head_repo = str(head_repo_obj.get("full_name", ""))

    head_sha = _optional_ref(head.get("sha"))
    if isinstance(head_sha, Err):
        return head_sha
    base_sha = _optional_ref(base.get("sha"))
    if isinstance(base_sha, Err):
        return base_sha

    return Ok(
        PullRequestContext(
            number=number,
            head_repo=head_repo,
            base_repo=base_repo,
            author=author,
            # A deleted head repo also counts as a fork.
            is_fork=head_repo != base_repo,
            is_draft=bool(pr.get("draft", False)),
            head_sha=head_sha.value,
            base_sha=base_sha.value,
        )
    )


def build_pr_context_ado(
    environ: Mapping[str, str],
) -> Result[PullRequestContext | None, ValidationError]:
    """Build context from Azure Pipelines variables.

    Returns ``Ok(None)`` for non-PR builds. ADO does not expose draft
    state through variables, so ``is_draft`` is False unless
    ``SYSTEM_PULLREQUEST_ISDRAFT`` is set.
    """
    pr_id = environ.get("SYSTEM_PULLREQUEST_PULLREQUESTID")
    if not pr_id:
        return Ok(None)
    try:
        number = int(pr_id)
    except ValueError:
        return _invalid_payload(
            f"SYSTEM_PULLREQUEST_PULLREQUESTID is not numeric: {pr_id!r}",
            "SYSTEM_PULLREQUEST_PULLREQUESTID",
        )

    source_uri = environ.get("SYSTEM_PULLREQUEST_SOURCEREPOSITORYURI", "")
    target_uri = environ.get("BUILD_REPOSITORY_URI", "")

    head_sha = _optional_ref(
        environ.get("SYSTEM_PULLREQUEST_SOURCECOMMITID")
        or environ.get("BUILD_SOURCEVERSION")
    )
    if isinstance(head_sha, Err):
        return head_sha

    return Ok(
        PullRequestContext(
            number=number,
            head_repo=source_uri,
            base_repo=target_uri,
            author=environ.get("BUILD_REQUESTEDFOR", "unknown"),
            is_fork=source_uri != "" and source_uri != target_uri,
            is_draft=environ.get("SYSTEM_PULLREQUEST_ISDRAFT", "").lower() == "true",
            head_sha=head_sha.value,
        )
    )
