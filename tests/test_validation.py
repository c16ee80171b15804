"""Tests for branded git refs and canonical paths."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from review_router.errors import ValidationErrorCode
from review_router.results import Err, Ok
from review_router.validation import (
    CanonicalPathHelpers,
    SafeGitRefHelpers,
    has_traversal,
    is_canonical_path,
    is_safe_git_ref,
    normalize_repo_path,
    parse_canonical_path,
    parse_git_ref,
)
from tests.conftest import make_finding


class TestSafeGitRef:
    @pytest.mark.parametrize(
        "ref", ["main", "feature/x-1", "v1.2.3", "a1b2c3d4", "release_2024"]
    )
    def test_valid(self, ref: str) -> None:
        assert parse_git_ref(ref) == Ok(ref)
        assert is_safe_git_ref(ref)

    @pytest.mark.parametrize(
        ("ref", "label"),
        [
            ("../etc", "path traversal"),
            ("-rf", "leading dash"),
            ("main;ls", "shell metacharacter"),
            ("a b", "whitespace"),
        ],
    )
    def test_forbidden_patterns(self, ref: str, label: str) -> None:
        result = parse_git_ref(ref)
        assert isinstance(result, Err)
        assert result.error.code == ValidationErrorCode.INVALID_GIT_REF
        assert label in result.error.message
        assert not is_safe_git_ref(ref)

    def test_invalid_characters(self) -> None:
        result = parse_git_ref("main~1")
        assert isinstance(result, Err)
        assert result.error.code == ValidationErrorCode.INVALID_INPUT

    def test_empty_and_too_long(self) -> None:
        assert isinstance(parse_git_ref(""), Err)
        assert isinstance(parse_git_ref("a" * 257), Err)
        assert isinstance(parse_git_ref("a" * 256), Ok)

    def test_non_string(self) -> None:
        result = parse_git_ref(123)
        assert isinstance(result, Err)
        assert result.error.context["constraint"] == "type"


class TestCanonicalPath:
    def test_backslashes_normalized(self) -> None:
        assert parse_canonical_path("src\\lib\\x.py") == Ok("src/lib/x.py")

    @pytest.mark.parametrize("path", ["../x", "/etc/passwd", "C:/win", "a/../b"])
    def test_traversal_rejected(self, path: str) -> None:
        result = parse_canonical_path(path)
        assert isinstance(result, Err)
        assert result.error.code == ValidationErrorCode.INVALID_PATH

    def test_invalid_characters(self) -> None:
        assert not is_canonical_path("src/x$.py")

    def test_normalize_repo_path(self) -> None:
        assert normalize_repo_path("./src//x.py") == "src/x.py"
        with pytest.raises(ValueError, match="traversal"):
            normalize_repo_path("src/../../x.py")

    @pytest.mark.parametrize(
        "path",
        ["src/foo..bar.py", "./src/x.py", "/src/x.py", "src/x y.py", "a/../b", ".."],
    )
    def test_one_validator_decides(self, path: str) -> None:
        accepted = is_canonical_path(path)
        try:
            normalize_repo_path(path)
        except ValueError:
            raised = True
        else:
            raised = False
        assert accepted is not raised

    def test_double_dot_inside_a_name_is_not_traversal(self) -> None:
        assert parse_canonical_path("src/foo..bar.py") == Ok("src/foo..bar.py")
        assert not has_traversal("src/foo..bar.py")
        assert has_traversal("src/../bar.py")

    def test_finding_file_uses_canonical_validation(self) -> None:
        assert make_finding(file="./src/foo..bar.py").file == "src/foo..bar.py"
        with pytest.raises(PydanticValidationError):
            make_finding(file="/etc/passwd")
        with pytest.raises(PydanticValidationError):
            make_finding(file="src/x$.py")

    def test_finding_lines_are_non_negative(self) -> None:
        assert make_finding(line=0).line == 0
        with pytest.raises(PydanticValidationError):
            make_finding(line=-1)


class TestHelpers:
    def test_guard_agrees_with_parse(self) -> None:
        for value in ["main", "bad ref", "", None]:
            assert SafeGitRefHelpers.is_(value) == isinstance(
                parse_git_ref(value), Ok
            )

    def test_branding_goes_through_parse(self) -> None:
        assert not hasattr(CanonicalPathHelpers, "brand")
        assert not hasattr(CanonicalPathHelpers, "make")
        match CanonicalPathHelpers.parse("src\\x.py"):
            case Ok(value=branded):
                assert CanonicalPathHelpers.unbrand(branded) == "src/x.py"
            case Err():
                pytest.fail("valid path rejected")
        assert CanonicalPathHelpers.name == "CanonicalPath"
