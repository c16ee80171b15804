"""Preemptible execution of CPU-bound work in a child process.

Cooperative cancellation cannot interrupt a blocking call such as a
catastrophically backtracking regex. Work that may run unbounded on
untrusted input runs in a separate process that the parent can
terminate on deadline.

The worker talks to the parent over a queue only:

* ``emit(item)`` streams one partial result as soon as it exists;
* the return value is sent as the final message;
* an exception is sent as an error message.

The parent drains the queue while the child runs. After a forced
termination nothing more is read, so only items drained before the
deadline survive.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
import queue as queue_mod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from review_router.constants import ISOLATED_KILL_GRACE_SECONDS

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.02

# spawn: no inherited locks or event-loop state from the parent
_MP_CONTEXT = multiprocessing.get_context("spawn")

type Emit = Callable[[Any], None]


@dataclass
class IsolatedOutcome:
    items: list[Any] = field(default_factory=lambda: list[Any]())
    result: Any = None
    completed: bool = False
    timed_out: bool = False
    error: str | None = None
    exitcode: int | None = None


def _child_main(
    out: Any, target: Callable[..., Any], args: tuple[Any, ...]
) -> None:
    def emit(item: Any) -> None:
        out.put(("item", item))

    try:
        result = target(emit, *args)
    except Exception as exc:  # noqa: BLE001
        out.put(("error", f"{type(exc).__name__}: {exc}"))
    else:
        out.put(("done", result))


def _drain(
    out: Any, outcome: IsolatedOutcome, on_item: Emit | None
) -> None:
    while True:
        try:
            kind, payload = out.get_nowait()
        except queue_mod.Empty:
            return
        if kind == "item":
            outcome.items.append(payload)
            if on_item is not None:
                on_item(payload)
        elif kind == "done":
            outcome.result = payload
            outcome.completed = True
        elif kind == "error":
            outcome.error = str(payload)


async def _stop(proc: Any) -> None:
    if not proc.is_alive():
        return
    proc.terminate()
    await asyncio.to_thread(proc.join, ISOLATED_KILL_GRACE_SECONDS)
    if proc.is_alive():
        logger.warning("event=isolated_kill pid=%s", proc.pid)
        proc.kill()
        await asyncio.to_thread(proc.join, ISOLATED_KILL_GRACE_SECONDS)


async def run_isolated(
    target: Callable[..., Any],
    args: tuple[Any, ...] = (),
    *,
    deadline_seconds: float | None = None,
    on_item: Emit | None = None,
) -> IsolatedOutcome:
    """Run ``target(emit, *args)`` in a child process.

    ``target`` must be a module-level (picklable) function. If the
    deadline passes, or the calling task is cancelled, the child is
    terminated (then killed) and the partial items drained so far are
    kept. Cancellation still propagates to the caller.
    """
    out = _MP_CONTEXT.Queue()
    proc = _MP_CONTEXT.Process(
        target=_child_main, args=(out, target, args), daemon=True
    )
    outcome = IsolatedOutcome()
    loop = asyncio.get_running_loop()
    started = loop.time()
    proc.start()
    try:
        while True:
            _drain(out, outcome, on_item)
            if outcome.completed or outcome.error is not None:
                break
            if not proc.is_alive():
                # child exited; pick up anything flushed during shutdown
                await asyncio.to_thread(proc.join, ISOLATED_KILL_GRACE_SECONDS)
                _drain(out, outcome, on_item)
                if not outcome.completed and outcome.error is None:
                    outcome.error = f"worker exited with code {proc.exitcode}"
                break
            if (
                deadline_seconds is not None
                and loop.time() - started >= deadline_seconds
            ):
                outcome.timed_out = True
                logger.warning(
                    "event=isolated_deadline pid=%s deadline_s=%.2f items=%d",
                    proc.pid,
                    deadline_seconds,
                    len(outcome.items),
                )
                break
            await asyncio.sleep(POLL_INTERVAL_SECONDS)
    finally:
        if outcome.completed or outcome.error is not None:
            await asyncio.to_thread(proc.join, ISOLATED_KILL_GRACE_SECONDS)
        await _stop(proc)
        outcome.exitcode = proc.exitcode
        out.close()
        out.cancel_join_thread()
    return outcome
