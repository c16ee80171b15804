"""Tests for pull-request trust checks and context builders."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from review_router.config import ReviewConfig, parse_review_config
from review_router.errors import ValidationErrorCode
from review_router.results import Err, Ok, unwrap
from review_router.trust import (
    PullRequestContext,
    build_pr_context_ado,
    build_pr_context_github,
    check_trust,
)


def _event(**pr_overrides: Any) -> dict[str, Any]:
    pr: dict[str, Any] = {
        "number": 7,
        "draft": False,
        "user": {"login": "octocat"},
        "head": {"sha": "a1b2c3", "repo": {"full_name": "octocat/hello"}},
        "base": {"sha": "d4e5f6", "repo": {"full_name": "acme/hello"}},
    }
    pr.update(pr_overrides)
    return {"pull_request": pr}


class TestCheckTrust:
    def test_same_repo_trusted(
        self, trusted_pr: PullRequestContext, review_config: ReviewConfig
    ) -> None:
        assert check_trust(trusted_pr, review_config).trusted

    def test_draft_never_trusted(
        self, trusted_pr: PullRequestContext, review_config: ReviewConfig
    ) -> None:
        result = check_trust(replace(trusted_pr, is_draft=True), review_config)
        assert not result.trusted
        assert result.reason == "Skipping draft PR"

    def test_fork_rejected(
        self, trusted_pr: PullRequestContext, review_config: ReviewConfig
    ) -> None:
        fork = replace(trusted_pr, is_fork=True, head_repo="mallory/widgets")
        result = check_trust(fork, review_config)
        assert not result.trusted
        assert "mallory/widgets" in (result.reason or "")

    def test_fork_allowlisted_by_repo_or_author(
        self, trusted_pr: PullRequestContext
    ) -> None:
        fork = replace(trusted_pr, is_fork=True, head_repo="friend/widgets")
        by_repo = unwrap(parse_review_config({"fork_allowlist": ["friend/widgets"]}))
        by_author = unwrap(parse_review_config({"fork_allowlist": ["dev"]}))
        assert check_trust(fork, by_repo).trusted
        assert check_trust(fork, by_author).trusted

    def test_forks_allowed_when_not_trusted_only(
        self, trusted_pr: PullRequestContext
    ) -> None:
        config = unwrap(parse_review_config({"trusted_only": False}))
        fork = replace(trusted_pr, is_fork=True, head_repo="anyone/widgets")
        assert check_trust(fork, config).trusted


class TestGithubContext:
    def test_fork_detected(self) -> None:
        ctx = unwrap(build_pr_context_github(_event()))
        assert ctx.number == 7
        assert ctx.is_fork is True
        assert ctx.author == "octocat"
        assert ctx.head_sha == "a1b2c3"

    def test_deleted_head_repo_is_fork(self) -> None:
        event = _event(head={"sha": "a1b2c3", "repo": None})
        assert unwrap(build_pr_context_github(event)).is_fork is True

    def test_missing_pull_request(self) -> None:
        result = build_pr_context_github({"action": "opened"})
        assert isinstance(result, Err)
        assert result.error.code == ValidationErrorCode.INVALID_INPUT

    def test_unsafe_sha_rejected(self) -> None:
        event = _event(head={"sha": "abc; rm -rf /", "repo": None})
        result = build_pr_context_github(event)
        assert isinstance(result, Err)
        assert result.error.code == ValidationErrorCode.INVALID_GIT_REF


class TestAdoContext:
    def test_non_pr_build(self) -> None:
        assert build_pr_context_ado({}) == Ok(None)

    def test_pr_build(self) -> None:
        env = {
            "SYSTEM_PULLREQUEST_PULLREQUESTID": "12",
            "SYSTEM_PULLREQUEST_SOURCEREPOSITORYURI": "https://dev.azure.com/x/_git/r",
            "BUILD_REPOSITORY_URI": "https://dev.azure.com/x/_git/r",
            "SYSTEM_PULLREQUEST_SOURCECOMMITID": "cafe1234",
            "BUILD_REQUESTEDFOR": "Dana",
        }
        ctx = unwrap(build_pr_context_ado(env))
        assert ctx is not None
        assert ctx.number == 12
        assert ctx.is_fork is False
        assert ctx.head_sha == "cafe1234"

    def test_non_numeric_id(self) -> None:
        result = build_pr_context_ado({"SYSTEM_PULLREQUEST_PULLREQUESTID": "abc"})
        assert isinstance(result, Err)
