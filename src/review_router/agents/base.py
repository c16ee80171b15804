"""Agent contract and execution context.

Agents satisfy :class:`ReviewAgent` structurally (no inheritance).
Test doubles can be plain classes matching the same signature.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from review_router.config import ReviewConfig
from review_router.diff.models import CanonicalDiff, CanonicalDiffFile
from review_router.models import AgentResult, Finding

logger = logging.getLogger(__name__)


class PartialFindingSink:
    """Side channel for findings reported before an agent completes.

    When the orchestrator cancels an agent on deadline it keeps whatever
    was reported here; nothing else from the cancelled run survives.
    """

    def __init__(self) -> None:
        self._findings: list[Finding] = []

    def report(self, finding: Finding) -> None:
        self._findings.append(finding)

    def extend(self, findings: list[Finding]) -> None:
        self._findings.extend(findings)

    def snapshot(self) -> list[Finding]:
        return list(self._findings)

    def __len__(self) -> int:
        return len(self._findings)


@dataclass
class AgentContext:
    """Everything one agent invocation may read.

    ``env`` is already stripped of posting credentials.
    """

    repo_path: Path
    diff: CanonicalDiff
    diff_text: str
    config: ReviewConfig
    env: dict[str, str] = field(default_factory=lambda: dict[str, str]())
    files: list[CanonicalDiffFile] = field(
        default_factory=lambda: list[CanonicalDiffFile]()
    )
    effective_model: str | None = None
    provider: str | None = None
    pr_number: int | None = None
    timeout_seconds: float | None = None
    partial: PartialFindingSink = field(default_factory=PartialFindingSink)


class ReviewAgent(Protocol):
    """Pluggable analysis worker."""

    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def uses_llm(self) -> bool: ...

    def supports(self, file: CanonicalDiffFile) -> bool: ...

    async def run(self, context: AgentContext) -> AgentResult: ...


class AgentRegistry:
    """Agents addressable by id. Duplicate ids are rejected."""

    def __init__(self, agents: list[ReviewAgent] | None = None) -> None:
        self._agents: dict[str, ReviewAgent] = {}
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: ReviewAgent) -> None:
        if agent.id in self._agents:
            msg = f"Agent already registered: {agent.id}"
            raise ValueError(msg)
        self._agents[agent.id] = agent

    def get(self, agent_id: str) -> ReviewAgent | None:
        return self._agents.get(agent_id)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    @property
    def ids(self) -> list[str]:
        return sorted(self._agents)
