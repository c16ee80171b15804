"""Shared test fixtures - sample diff, fake agents, settings."""

import os

# Force demo API keys for all tests - no real LLM calls.
# These are set unconditionally at import time, so even if you have
# real keys in your shell environment, pytest overwrites them before
# any Settings() is created. To use real keys, edit these lines.
os.environ["ANTHROPIC_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENAI_API_KEY"] = "for-demo-purposes-only"

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from review_router.agents.base import AgentContext, AgentRegistry
from review_router.config import ReviewConfig, Settings, parse_review_config
from review_router.constants import Severity
from review_router.diff.models import CanonicalDiff, CanonicalDiffFile
from review_router.diff.parser import canonicalize_diff
from review_router.models import (
    AgentMetrics,
    AgentResult,
    AgentSuccess,
    Finding,
)
from review_router.results import unwrap
from review_router.trust import PullRequestContext
from review_router.validation import SafeGitRef

SAMPLE_DIFF = """\
diff --git a/src/a.ts b/src/a.ts
index 1111111..2222222 100644
--- a/src/a.ts
+++ b/src/a.ts
@@ -8,4 +8,7 @@ export function a() {
 const x = 1;
 const y = 2;
+const token = getToken();
+eval(userInput);
+log(token);
 return x + y;
 }
diff --git a/src/b.ts b/src/b.ts
deleted file mode 100644
index 3333333..0000000
--- a/src/b.ts
+++ /dev/null
@@ -1,2 +0,0 @@
-export const b = 1;
-export const c = 2;
diff --git a/src/c.ts b/src/c.ts
index 4444444..5555555 100644
--- a/src/c.ts
+++ b/src/c.ts
@@ -1,2 +1,2 @@
-const old = 1;
+const updated = 1;
 export default updated;
"""


def make_finding(
    file: str = "src/a.ts",
    line: int | None = 10,
    message: str = "Something is off",
    *,
    severity: Severity = Severity.WARNING,
    source_agent: str = "agent",
    rule_id: str | None = None,
) -> Finding:
    return Finding(
        severity=severity,
        file=file,
        line=line,
        message=message,
        rule_id=rule_id,
        source_agent=source_agent,
    )


class FakeAgent:
    """Configurable stand-in for a review agent.

    ``findings`` are returned on success. ``partial`` findings are
    reported through the sink before ``delay`` elapses, so a deadline
    shorter than ``delay`` leaves exactly those behind.
    """

    def __init__(
        self,
        agent_id: str,
        findings: Sequence[Finding] = (),
        *,
        partial: Sequence[Finding] = (),
        delay: float = 0.0,
        uses_llm: bool = False,
        tokens: int = 0,
        cost_usd: float = 0.0,
        raises: Exception | None = None,
        supports: Callable[[CanonicalDiffFile], bool] | None = None,
    ) -> None:
        self._id = agent_id
        self._findings = list(findings)
        self._partial = list(partial)
        self._delay = delay
        self._uses_llm = uses_llm
        self._tokens = tokens
        self._cost_usd = cost_usd
        self._raises = raises
        self._supports = supports
        self.calls = 0
        self.contexts: list[AgentContext] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return f"Fake {self._id}"

    @property
    def uses_llm(self) -> bool:
        return self._uses_llm

    def supports(self, file: CanonicalDiffFile) -> bool:
        if self._supports is not None:
            return self._supports(file)
        return not file.is_deleted

    async def run(self, context: AgentContext) -> AgentResult:
        self.calls += 1
        self.contexts.append(context)
        for finding in self._partial:
            context.partial.report(finding)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._raises is not None:
            raise self._raises
        return AgentSuccess(
            agent_id=self._id,
            findings=self._findings,
            metrics=AgentMetrics(
                files_processed=len(context.files),
                tokens_used=self._tokens,
                estimated_cost_usd=self._cost_usd,
            ),
        )


@pytest.fixture
def sample_diff_text() -> str:
    return SAMPLE_DIFF


@pytest.fixture
def sample_diff() -> CanonicalDiff:
    return canonicalize_diff(SAMPLE_DIFF)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        review_cache_dir=tmp_path / "cache",
        cache_enabled=False,
        trace_enabled=False,
        agent_timeout_seconds=5,
    )


@pytest.fixture
def review_config() -> ReviewConfig:
    return unwrap(parse_review_config({}))


@pytest.fixture
def trusted_pr() -> PullRequestContext:
    return PullRequestContext(
        number=42,
        head_repo="acme/widgets",
        base_repo="acme/widgets",
        author="dev",
        is_fork=False,
        is_draft=False,
        head_sha=SafeGitRef("abc123def456"),
    )


def make_registry(*agents: FakeAgent) -> AgentRegistry:
    return AgentRegistry(list(agents))
