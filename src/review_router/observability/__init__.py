"""Observability layer -- event dispatcher + pluggable handlers."""

from __future__ import annotations

import logging

from review_router.config import Settings
from review_router.observability.dispatcher import TraceDispatcher
from review_router.observability.events import (
    TraceCategory,
    TraceEvent,
    TraceEventType,
)
from review_router.observability.handlers.console import (
    ConsoleTraceHandler,
)
from review_router.observability.handlers.cost_aggregator import (
    CostAggregatorHandler,
)

logger = logging.getLogger(__name__)

__all__ = [
    "TraceCategory",
    "TraceDispatcher",
    "TraceEvent",
    "TraceEventType",
    "initialize_tracing",
]


def initialize_tracing(settings: Settings) -> TraceDispatcher:
    """Create dispatcher and register handlers based on settings.

    The cost aggregator is always registered so the run summary can
    report per-agent spend even with console tracing disabled.
    """
    dispatcher = TraceDispatcher()
    dispatcher.register(CostAggregatorHandler())

    if settings.trace_enabled:
        dispatcher.register(ConsoleTraceHandler())

    return dispatcher
