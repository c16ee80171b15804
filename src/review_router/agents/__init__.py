"""Agent contract, reference adapters and the default registry."""

from __future__ import annotations

from review_router.agents.base import (
    AgentContext,
    AgentRegistry,
    PartialFindingSink,
    ReviewAgent,
)
from review_router.config import Settings

__all__ = [
    "AgentContext",
    "AgentRegistry",
    "PartialFindingSink",
    "ReviewAgent",
    "build_default_registry",
]


def build_default_registry(settings: Settings) -> AgentRegistry:
    """Register the built-in agents.

    The LLM reviewer is imported here, not at module level, so that
    litellm loads only after logging phase 1 has run.
    """
    from review_router.agents.llm_reviewer import LLMReviewAgent
    from review_router.agents.pattern_agent import PatternAgent

    return AgentRegistry([
        PatternAgent(),
        LLMReviewAgent(
            model=settings.litellm_model,
            request_timeout=settings.llm_timeout_seconds,
        ),
    ])
