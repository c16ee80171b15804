"""Error classification for provider and subprocess failures.

Classifies exceptions by category to enable:
- Structured logging (which errors are transient vs permanent)
- Mapping onto the typed NetworkError codes for run summaries
- Retry decisions (only 429, 5xx and connection errors)
"""

from __future__ import annotations

import asyncio
from enum import Enum

from review_router.errors import NetworkError, NetworkErrorCode, ReviewError


class ErrorClass(Enum):
    TRANSIENT = "transient"  # 429, network errors - retryable
    SERVER = "server"  # 500, 502, 503 - retryable
    TIMEOUT = "timeout"  # deadline exceeded - do NOT retry
    AUTH = "auth"  # 401, 403 - do NOT retry
    CLIENT = "client"  # other 4xx - do NOT retry
    UNKNOWN = "unknown"  # unclassified - do NOT retry


def _status_code(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    status = getattr(error, "status", None)
    if isinstance(status, int):
        return status
    return None


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an error to determine handling strategy.

    Checks structured attributes first (status_code), falls back
    to string matching for untyped exceptions.
    """
    status_code = _status_code(error)
    if status_code is not None:
        if status_code == 429:
            return ErrorClass.TRANSIENT
        if status_code in (401, 403):
            return ErrorClass.AUTH
        if 400 <= status_code < 500:
            return ErrorClass.CLIENT
        if 500 <= status_code < 600:
            return ErrorClass.SERVER

    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorClass.TIMEOUT
    if isinstance(error, ConnectionError):
        return ErrorClass.TRANSIENT

    msg = str(error).lower()

    if "timeout" in msg or "timed out" in msg:
        return ErrorClass.TIMEOUT
    if "429" in msg or "rate limit" in msg or "rate_limit" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("500", "502", "503", "504")):
        return ErrorClass.SERVER
    if "econnrefused" in msg or "econnreset" in msg or "connection" in msg:
        return ErrorClass.TRANSIENT
    if "401" in msg or "403" in msg or "unauthorized" in msg:
        return ErrorClass.AUTH
    if any(code in msg for code in ("400", "404")):
        return ErrorClass.CLIENT

    return ErrorClass.UNKNOWN


_RETRYABLE = frozenset({
    ErrorClass.TRANSIENT,
    ErrorClass.SERVER,
})


def is_retryable(error: BaseException) -> bool:
    """Return True if the error category supports retry."""
    return classify_error(error) in _RETRYABLE


def _network_code(error: BaseException, cls: ErrorClass) -> NetworkErrorCode:
    match cls:
        case ErrorClass.TIMEOUT:
            return NetworkErrorCode.TIMEOUT
        case ErrorClass.AUTH:
            return NetworkErrorCode.AUTH_FAILED
        case ErrorClass.SERVER:
            return NetworkErrorCode.SERVER_ERROR
        case ErrorClass.TRANSIENT:
            if _status_code(error) == 429 or "rate" in str(error).lower():
                return NetworkErrorCode.RATE_LIMITED
            return NetworkErrorCode.CONNECTION_FAILED
        case ErrorClass.CLIENT | ErrorClass.UNKNOWN:
            return NetworkErrorCode.INVALID_RESPONSE


def to_network_error(
    error: BaseException, *, provider: str | None = None
) -> ReviewError:
    """Wrap an arbitrary provider exception as a typed NetworkError.

    Errors that are already typed pass through unchanged.
    """
    if isinstance(error, ReviewError):
        return error
    cls = classify_error(error)
    context: dict[str, object] = {"error_class": cls.value}
    status = _status_code(error)
    if status is not None:
        context["status"] = status
    if provider:
        context["provider"] = provider
    return NetworkError(
        str(error) or type(error).__name__,
        _network_code(error, cls),
        context,
        cause=error,
    )
