"""Two-variant success/failure container for internal fallible calls.

Internal functions return ``Ok(value)`` or ``Err(error)`` instead of
raising. Only the outermost public boundary converts an ``Err`` into a
raised exception (see :func:`wrap_throwing`).

Usage::

    match parse_git_ref(raw):
        case Ok(value=ref):
            ...
        case Err(error=err):
            logger.warning("event=bad_ref code=%s", err.code)
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Literal, NoReturn, TypeGuard


@dataclass(frozen=True, slots=True)
class Ok[T]:
    """Success variant."""

    value: T

    @property
    def ok(self) -> Literal[True]:
        return True


@dataclass(frozen=True, slots=True)
class Err[E]:
    """Failure variant."""

    error: E

    @property
    def ok(self) -> Literal[False]:
        return False


type Result[T, E] = Ok[T] | Err[E]


class UnwrapError(Exception):
    """Raised by :func:`unwrap` on an ``Err`` whose payload is not an exception."""

    def __init__(self, error: object) -> None:
        super().__init__(f"called unwrap on Err: {error!r}")
        self.error = error


def is_ok[T, E](result: Result[T, E]) -> TypeGuard[Ok[T]]:
    return isinstance(result, Ok)


def is_err[T, E](result: Result[T, E]) -> TypeGuard[Err[E]]:
    return isinstance(result, Err)


def _raise(error: object) -> NoReturn:
    if isinstance(error, BaseException):
        raise error
    raise UnwrapError(error)


def unwrap[T, E](result: Result[T, E]) -> T:
    """Return the value or raise the error (wrapped if not an exception)."""
    if isinstance(result, Ok):
        return result.value
    _raise(result.error)


def unwrap_or[T, E](result: Result[T, E], default: T) -> T:
    if isinstance(result, Ok):
        return result.value
    return default


def map_result[T, U, E](
    result: Result[T, E], fn: Callable[[T], U]
) -> Result[U, E]:
    if isinstance(result, Ok):
        return Ok(fn(result.value))
    return result


def map_err[T, E, F](
    result: Result[T, E], fn: Callable[[E], F]
) -> Result[T, F]:
    if isinstance(result, Err):
        return Err(fn(result.error))
    return result


def flat_map[T, U, E](
    result: Result[T, E], fn: Callable[[T], Result[U, E]]
) -> Result[U, E]:
    if isinstance(result, Ok):
        return fn(result.value)
    return result


def match_result[T, E, R](
    result: Result[T, E],
    on_ok: Callable[[T], R],
    on_err: Callable[[E], R],
) -> R:
    if isinstance(result, Ok):
        return on_ok(result.value)
    return on_err(result.error)


def collect[T, E](results: Iterable[Result[T, E]]) -> Result[list[T], E]:
    """Gather all values, short-circuiting on the first ``Err``."""
    values: list[T] = []
    for result in results:
        if isinstance(result, Err):
            return result
        values.append(result.value)
    return Ok(values)


def partition[T, E](
    results: Iterable[Result[T, E]],
) -> tuple[list[T], list[E]]:
    """Split results into (values, errors), preserving order."""
    values: list[T] = []
    errors: list[E] = []
    for result in results:
        if isinstance(result, Ok):
            values.append(result.value)
        else:
            errors.append(result.error)
    return values, errors


def try_catch[T, E](
    fn: Callable[[], T],
    on_error: Callable[[Exception], E],
) -> Result[T, E]:
    """Run a raising callable and capture its exception as ``Err``."""
    try:
        return Ok(fn())
    except Exception as exc:
        return Err(on_error(exc))


async def from_awaitable[T, E](
    awaitable: Awaitable[T],
    on_error: Callable[[Exception], E],
) -> Result[T, E]:
    """Await and capture any exception as ``Err``."""
    try:
        return Ok(await awaitable)
    except Exception as exc:
        return Err(on_error(exc))


def wrap_throwing[**P, T](
    fn: Callable[P, Result[T, Any]],
) -> Callable[P, T]:
    """Adapt a Result-returning function for exception-based callers."""

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        return unwrap(fn(*args, **kwargs))

    return wrapper


def wrap_throwing_async[**P, T](
    fn: Callable[P, Awaitable[Result[T, Any]]],
) -> Callable[P, Awaitable[T]]:
    """Async variant of :func:`wrap_throwing`."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        return unwrap(await fn(*args, **kwargs))

    return wrapper
