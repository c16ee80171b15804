"""Typed convenience functions for emitting trace events."""

from __future__ import annotations

from typing import Any

from review_router.observability.dispatcher import TraceDispatcher
from review_router.observability.events import TraceEvent


async def emit_run_start(
    dispatcher: TraceDispatcher,
    trace_id: str,
    pr_number: int | None,
    config_hash: str,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="run_start",
            trace_id=trace_id,
            category="pipeline",
            data={"pr": pr_number, "config_hash": config_hash},
        )
    )


async def emit_run_end(
    dispatcher: TraceDispatcher,
    trace_id: str,
    duration_ms: float,
    status: str,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="run_end",
            trace_id=trace_id,
            category="pipeline",
            data={"duration_ms": duration_ms, "status": status},
        )
    )


async def emit_pass_start(
    dispatcher: TraceDispatcher,
    trace_id: str,
    pass_name: str,
    agent_count: int,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="pass_start",
            trace_id=trace_id,
            category="pipeline",
            data={"pass": pass_name, "agents": agent_count},
        )
    )


async def emit_pass_end(
    dispatcher: TraceDispatcher,
    trace_id: str,
    pass_name: str,
    duration_ms: float,
    successes: int,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="pass_end",
            trace_id=trace_id,
            category="pipeline",
            data={
                "pass": pass_name,
                "duration_ms": duration_ms,
                "successes": successes,
            },
        )
    )


async def emit_agent_start(
    dispatcher: TraceDispatcher,
    trace_id: str,
    agent_id: str,
    files: int,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="agent_start",
            trace_id=trace_id,
            category="agent",
            data={"agent_id": agent_id, "files": files},
        )
    )


async def emit_agent_end(
    dispatcher: TraceDispatcher,
    trace_id: str,
    agent_id: str,
    *,
    status: str,
    duration_ms: float,
    tokens: int,
    cost_usd: float,
    cached: bool,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="agent_end",
            trace_id=trace_id,
            category="agent",
            data={
                "agent_id": agent_id,
                "status": status,
                "duration_ms": duration_ms,
                "tokens": tokens,
                "cost_usd": cost_usd,
                "cached": cached,
            },
        )
    )


async def emit_cache_hit(
    dispatcher: TraceDispatcher,
    trace_id: str,
    agent_id: str,
    key: str,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="cache_hit",
            trace_id=trace_id,
            category="cache",
            data={"agent_id": agent_id, "key": key},
        )
    )


async def emit_error(
    dispatcher: TraceDispatcher,
    trace_id: str,
    code: str,
    message: str,
    **extra: Any,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="error",
            trace_id=trace_id,
            category="pipeline",
            data={"code": code, "message": message, **extra},
        )
    )
