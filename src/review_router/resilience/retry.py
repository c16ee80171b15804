"""Tenacity retry policy shared by network-backed agent adapters.

Retries are internal to an adapter; the orchestrator never retries.
:func:`retry_policy` is the single definition of when and how long to
back off; :func:`retry_transient` applies it as a decorator.
"""

from __future__ import annotations

import logging
from typing import Any

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from review_router.constants import (
    RETRY_INITIAL_WAIT,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_WAIT,
)
from review_router.resilience.errors import classify_error, is_retryable

logger = logging.getLogger(__name__)


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "event=retry attempt=%d error_class=%s error=%s",
        state.attempt_number,
        classify_error(exc).value if exc else "none",
        exc,
    )


def retry_policy(
    *,
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    initial_wait: float = RETRY_INITIAL_WAIT,
    max_wait: float = RETRY_MAX_WAIT,
) -> dict[str, Any]:
    """Tenacity arguments: jittered exponential backoff on transient errors.

    Only 429, 5xx and connection errors are retried; everything else
    (auth, bad request, timeouts) is re-raised on first failure.
    """
    return {
        "stop": stop_after_attempt(max_attempts),
        "wait": wait_exponential_jitter(initial=initial_wait, max=max_wait),
        "retry": retry_if_exception(is_retryable),
        "before_sleep": _log_retry,
        "reraise": True,
    }


def retry_transient(**overrides: Any) -> Any:
    """``@retry`` decorator configured with :func:`retry_policy`."""
    return retry(**retry_policy(**overrides))

