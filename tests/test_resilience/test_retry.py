"""Tests for the shared tenacity retry policy."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import pytest

from review_router.resilience.retry import retry_policy, retry_transient


class _StatusCodeError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class _Flaky:
    """Fails with the given errors, then returns ``"ok"``."""

    def __init__(self, *errors: Exception) -> None:
        self._errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return "ok"


def _fast(op: _Flaky, max_attempts: int = 3) -> Callable[[], Awaitable[str]]:
    @retry_transient(max_attempts=max_attempts, initial_wait=0.01, max_wait=0.01)
    async def _call() -> str:
        return await op()

    return _call


@pytest.mark.asyncio
async def test_retries_server_error_then_succeeds(
    caplog: pytest.LogCaptureFixture,
) -> None:
    op = _Flaky(_StatusCodeError("unavailable", 503), ConnectionResetError())
    with caplog.at_level("WARNING", logger="review_router.resilience.retry"):
        result = await _fast(op)()
    assert result == "ok"
    assert op.calls == 3
    assert caplog.text.count("event=retry") == 2


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts() -> None:
    op = _Flaky(*(_StatusCodeError("busy", 429) for _ in range(5)))
    with pytest.raises(_StatusCodeError):
        await _fast(op, max_attempts=2)()
    assert op.calls == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error", [_StatusCodeError("unauthorized", 401), TimeoutError("deadline")]
)
async def test_non_retryable_raised_immediately(error: Exception) -> None:
    op = _Flaky(error)
    with pytest.raises(type(error)):
        await _fast(op)()
    assert op.calls == 1


def test_policy_reraises_original_error() -> None:
    policy = retry_policy()
    assert policy["reraise"] is True
    assert policy["before_sleep"] is not None
