"""Cost aggregator handler -- tracks agent token and USD spend per run."""

from __future__ import annotations

from dataclasses import dataclass

from review_router.observability.events import TraceEvent


@dataclass
class AgentCost:
    """Accumulated spend for a single agent."""

    tokens: int = 0
    cost_usd: float = 0.0
    runs: int = 0
    cache_hits: int = 0


class CostAggregatorHandler:
    """Sums ``agent_end`` metrics per agent id.

    Cache hits are counted but contribute no spend.
    """

    def __init__(self) -> None:
        self._costs: dict[str, AgentCost] = {}

    @property
    def name(self) -> str:
        return "cost_aggregator"

    async def handle(self, event: TraceEvent) -> None:
        if event.type != "agent_end":
            return
        agent_id = str(event.data.get("agent_id", "unknown"))
        cost = self._costs.setdefault(agent_id, AgentCost())
        if event.data.get("cached"):
            cost.cache_hits += 1
            return
        cost.tokens += int(event.data.get("tokens", 0))
        cost.cost_usd += float(event.data.get("cost_usd", 0.0))
        cost.runs += 1

    def get_cost(self, agent_id: str) -> AgentCost:
        return self._costs.get(agent_id, AgentCost())

    def all_costs(self) -> dict[str, AgentCost]:
        return dict(self._costs)

    @property
    def total_usd(self) -> float:
        return sum(c.cost_usd for c in self._costs.values())
