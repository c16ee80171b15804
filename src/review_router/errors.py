"""Typed error taxonomy, grouped by originating layer.

Every error carries a machine-readable ``code``, a human message, a
free-form ``context`` mapping and an optional ``cause``. Errors travel
inside :class:`~review_router.results.Err` values within the core and
are serialized with :meth:`ReviewError.to_wire` for run summaries and
cache diagnostics.
"""

from __future__ import annotations

import re
import traceback
from enum import StrEnum
from typing import Any, ClassVar, TypedDict

from review_router.constants import MAX_CAUSE_DEPTH

_CODE_RE = re.compile(r"^[A-Z]+_[A-Z_]+$")


class ErrorWire(TypedDict, total=False):
    name: str
    code: str
    message: str
    cause: ErrorWire
    context: dict[str, Any]
    stack: str


# ── Error Codes ──────────────────────────────────────────


class ConfigErrorCode(StrEnum):
    INVALID_SCHEMA = "CONFIG_INVALID_SCHEMA"
    MISSING_FIELD = "CONFIG_MISSING_FIELD"
    INVALID_VALUE = "CONFIG_INVALID_VALUE"
    FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    PARSE_ERROR = "CONFIG_PARSE_ERROR"


class AgentErrorCode(StrEnum):
    EXECUTION_FAILED = "AGENT_EXECUTION_FAILED"
    TIMEOUT = "AGENT_TIMEOUT"
    PARSE_ERROR = "AGENT_PARSE_ERROR"
    NOT_FOUND = "AGENT_NOT_FOUND"
    DISABLED = "AGENT_DISABLED"


class NetworkErrorCode(StrEnum):
    CONNECTION_FAILED = "NETWORK_CONNECTION_FAILED"
    TIMEOUT = "NETWORK_TIMEOUT"
    AUTH_FAILED = "NETWORK_AUTH_FAILED"
    RATE_LIMITED = "NETWORK_RATE_LIMITED"
    SERVER_ERROR = "NETWORK_SERVER_ERROR"
    INVALID_RESPONSE = "NETWORK_INVALID_RESPONSE"


class ValidationErrorCode(StrEnum):
    INVALID_INPUT = "VALIDATION_INVALID_INPUT"
    INVALID_GIT_REF = "VALIDATION_INVALID_GIT_REF"
    INVALID_PATH = "VALIDATION_INVALID_PATH"
    CONSTRAINT_VIOLATED = "VALIDATION_CONSTRAINT_VIOLATED"


# ── Error Classes ────────────────────────────────────────


class ReviewError(Exception):
    """Base for all typed errors raised or returned by the router."""

    code_prefix: ClassVar[str] = ""

    def __init__(
        self,
        message: str,
        code: str,
        context: dict[str, Any] | None = None,
        *,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = str(code)
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause
        self.wire_stack: str | None = None
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"

    def to_wire(self, depth: int = 0) -> ErrorWire:
        """Serialize to the JSON wire format, bounding the cause chain."""
        wire: ErrorWire = {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "context": dict(self.context),
        }
        stack = self._stack()
        if stack:
            wire["stack"] = stack

        if self.cause is not None and depth < MAX_CAUSE_DEPTH:
            if isinstance(self.cause, ReviewError):
                wire["cause"] = self.cause.to_wire(depth + 1)
            else:
                wire["cause"] = {
                    "name": type(self.cause).__name__,
                    "code": "UNKNOWN_ERROR",
                    "message": str(self.cause),
                    "context": {},
                }
        return wire

    def _stack(self) -> str | None:
        if self.wire_stack:
            return self.wire_stack
        if self.__traceback__ is None:
            return None
        return "".join(traceback.format_exception(self))

    @classmethod
    def from_wire(cls, wire: ErrorWire, depth: int = 0) -> ReviewError:
        """Rebuild an error (and its cause chain) from the wire format.

        The concrete class is chosen by code prefix, so calling this on
        the base class returns the right subclass.
        """
        if depth > MAX_CAUSE_DEPTH:
            msg = "Cause chain exceeds maximum depth"
            raise ValueError(msg)
        code = wire.get("code", "")
        if not _CODE_RE.match(code):
            msg = f"Invalid error code in wire format: {code!r}"
            raise ValueError(msg)

        cause: BaseException | None = None
        raw_cause = wire.get("cause")
        if raw_cause is not None:
            cause = _cause_from_wire(raw_cause, depth + 1)

        target = _class_for_code(code) or cls
        error = target(
            wire.get("message", ""),
            code,
            wire.get("context", {}),
            cause=cause,
        )
        error.wire_stack = wire.get("stack")
        return error


class ConfigError(ReviewError):
    """Configuration could not be loaded or failed schema validation."""

    code_prefix = "CONFIG_"


class AgentError(ReviewError):
    """An agent failed to execute, timed out or produced bad output."""

    code_prefix = "AGENT_"


class NetworkError(ReviewError):
    """Provider connectivity, auth, rate limiting or server failure."""

    code_prefix = "NETWORK_"


class ValidationError(ReviewError):
    """Input failed a validation constraint (git ref, path, ...)."""

    code_prefix = "VALIDATION_"


_SUBCLASSES: tuple[type[ReviewError], ...] = (
    ConfigError,
    AgentError,
    NetworkError,
    ValidationError,
)


def _class_for_code(code: str) -> type[ReviewError] | None:
    for sub in _SUBCLASSES:
        if code.startswith(sub.code_prefix):
            return sub
    return None


def _cause_from_wire(wire: ErrorWire, depth: int) -> BaseException:
    if _class_for_code(wire.get("code", "")) is not None:
        return ReviewError.from_wire(wire, depth)
    if depth > MAX_CAUSE_DEPTH:
        msg = "Cause chain exceeds maximum depth"
        raise ValueError(msg)
    return Exception(wire.get("message", ""))


# ── Type Guards ──────────────────────────────────────────


def is_review_error(value: object) -> bool:
    return isinstance(value, ReviewError)


def is_config_error(value: object) -> bool:
    return isinstance(value, ConfigError)


def is_agent_error(value: object) -> bool:
    return isinstance(value, AgentError)


def is_network_error(value: object) -> bool:
    return isinstance(value, NetworkError)


def is_validation_error(value: object) -> bool:
    return isinstance(value, ValidationError)
