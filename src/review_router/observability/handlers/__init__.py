"""Built-in trace handlers."""

from review_router.observability.handlers.console import ConsoleTraceHandler
from review_router.observability.handlers.cost_aggregator import (
    AgentCost,
    CostAggregatorHandler,
)

__all__ = ["AgentCost", "ConsoleTraceHandler", "CostAggregatorHandler"]
