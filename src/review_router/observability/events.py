"""Typed trace events emitted during a review run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

TraceEventType = Literal[
    "run_start",
    "run_end",
    "pass_start",
    "pass_end",
    "agent_start",
    "agent_end",
    "cache_hit",
    "error",
]

TraceCategory = Literal[
    "pipeline",
    "agent",
    "cache",
    "budget",
]


@dataclass(frozen=True)
class TraceEvent:
    """Immutable trace event emitted during pipeline execution."""

    type: TraceEventType
    trace_id: str
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC)
    )
    category: TraceCategory = "pipeline"
    data: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )
