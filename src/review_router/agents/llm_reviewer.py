"""LLM-backed reviewer with per-model circuit breaker and retry."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import litellm
from circuitbreaker import (  # pyright: ignore[reportUnknownVariableType]
    CircuitBreaker,
    CircuitBreakerError,
)
from litellm.exceptions import RateLimitError as LitellmRateLimitError
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from review_router.agents.base import AgentContext
from review_router.constants import (
    CB_LLM_FAILURE_THRESHOLD,
    CB_LLM_RECOVERY_TIMEOUT,
    INPUT_COST_PER_1K_TOKENS,
    LLM_MAX_OUTPUT_TOKENS,
    LLM_MAX_PATCH_CHARS,
    OUTPUT_COST_PER_1K_TOKENS,
    FailureStage,
    Severity,
)
from review_router.diff.models import CanonicalDiffFile
from review_router.errors import AgentErrorCode
from review_router.models import (
    AgentFailure,
    AgentMetrics,
    AgentResult,
    AgentSuccess,
    Finding,
)
from review_router.resilience.errors import to_network_error
from review_router.resilience.retry import retry_transient

logger = logging.getLogger(__name__)

# litellm stubs have partially unknown types - typed alias
if TYPE_CHECKING:
    _acompletion: Callable[..., Coroutine[Any, Any, Any]]
else:
    _acompletion = litellm.acompletion

SYSTEM_PROMPT = (
    "You are a senior code reviewer. Review ONLY the added lines of the "
    "unified diff. Respond with a JSON object of the form "
    '{"findings": [{"file": str, "line": int|null, "severity": '
    '"error"|"warning"|"info", "message": str, "suggestion": str|null, '
    '"rule_id": str|null}]}. Return an empty list when nothing is wrong.'
)


@dataclass(frozen=True)
class LLMCallResult:
    """Structured return from guarded_llm_call with token metadata."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int


class _RawFinding(BaseModel):
    file: str
    line: int | None = None
    severity: Severity = Severity.WARNING
    message: str
    suggestion: str | None = None
    rule_id: str | None = None


class _RawResponse(BaseModel):
    findings: list[_RawFinding] = Field(default_factory=lambda: list[_RawFinding]())


def _is_non_rate_limit_error(
    thrown_type: type, thrown_value: BaseException
) -> bool:
    """Return True if NOT a rate limit error (should count as CB failure).

    Rate limit errors are transient backpressure signals, not provider
    outages, so they are excluded from circuit breaker failure tracking.
    """
    return not issubclass(thrown_type, LitellmRateLimitError)


# Per-model circuit breaker registry - each model gets independent
# failure tracking.
_breaker_registry: dict[str, CircuitBreaker] = {}  # pyright: ignore[reportUnknownVariableType]


def _get_breaker(model: str) -> CircuitBreaker:  # pyright: ignore[reportUnknownParameterType]
    """Get or create a circuit breaker for the given model."""
    if model not in _breaker_registry:
        _breaker_registry[model] = CircuitBreaker(  # pyright: ignore[reportUnknownMemberType]
            failure_threshold=CB_LLM_FAILURE_THRESHOLD,
            recovery_timeout=CB_LLM_RECOVERY_TIMEOUT,
            expected_exception=_is_non_rate_limit_error,
            name=f"llm_{model}",
        )
    return _breaker_registry[model]


@retry_transient()
async def guarded_llm_call(
    model: str,
    messages: list[dict[str, str]],
    timeout: float,
    *,
    api_key: str | None = None,
) -> LLMCallResult:
    """Circuit-breaker-protected JSON completion with retry.

    - Each model has its own circuit breaker.
    - Tenacity retries 429, 5xx and connection errors with jittered
      exponential backoff; auth and bad-request errors fail fast.
    """
    breaker = _get_breaker(model)
    if breaker.opened:  # pyright: ignore[reportUnknownMemberType]
        raise CircuitBreakerError(breaker)  # pyright: ignore[reportUnknownArgumentType]
    with breaker:  # pyright: ignore[reportUnknownMemberType]
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "timeout": timeout,
            "max_tokens": LLM_MAX_OUTPUT_TOKENS,
            "response_format": {"type": "json_object"},
        }
        if api_key:
            kwargs["api_key"] = api_key
        response: Any = await _acompletion(**kwargs)

    usage: Any = response.usage
    return LLMCallResult(
        content=str(response.choices[0].message.content or ""),
        model=model,
        input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
    )


def usage_cost(input_tokens: int, output_tokens: int) -> float:
    return (input_tokens / 1000) * INPUT_COST_PER_1K_TOKENS + (
        output_tokens / 1000
    ) * OUTPUT_COST_PER_1K_TOKENS


def _api_key_for(model: str, env: dict[str, str]) -> str | None:
    if model.startswith("anthropic/"):
        return env.get("ANTHROPIC_API_KEY")
    if model.startswith("azure/"):
        return env.get("AZURE_OPENAI_API_KEY")
    if model.startswith("ollama/"):
        return None
    return env.get("OPENAI_API_KEY")


def build_review_prompt(files: list[CanonicalDiffFile]) -> str:
    """Concatenate per-file hunks, truncated to the prompt budget."""
    parts: list[str] = []
    for f in files:
        parts.append(f"--- {f.path}\n{f.patch_text}")
    text = "\n\n".join(parts)
    return text[:LLM_MAX_PATCH_CHARS]


class LLMReviewAgent:
    """Semantic reviewer backed by any litellm-supported model."""

    def __init__(
        self,
        *,
        agent_id: str = "ai_semantic_review",
        model: str = "openai/gpt-4.1-mini",
        request_timeout: float = 60.0,
    ) -> None:
        self._id = agent_id
        self._model = model
        self._request_timeout = request_timeout

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return "AI Semantic Review"

    @property
    def uses_llm(self) -> bool:
        return True

    def supports(self, file: CanonicalDiffFile) -> bool:
        return not (file.is_deleted or file.is_binary or not file.parseable)

    async def run(self, context: AgentContext) -> AgentResult:
        start = time.monotonic()
        files = [f for f in context.files if self.supports(f)]
        model = context.effective_model or self._model
        prompt = build_review_prompt(files)

        def _metrics(tokens: int = 0, usd: float = 0.0) -> AgentMetrics:
            return AgentMetrics(
                duration_ms=(time.monotonic() - start) * 1000,
                files_processed=len(files),
                tokens_used=tokens,
                estimated_cost_usd=usd,
            )

        try:
            call = await guarded_llm_call(
                model,
                [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                self._request_timeout,
                api_key=_api_key_for(model, context.env),
            )
        except Exception as exc:  # noqa: BLE001
            err = to_network_error(exc, provider=context.provider or model)
            logger.warning(
                "event=llm_review_failed agent=%s model=%s code=%s",
                self._id,
                model,
                err.code,
                exc_info=True,
            )
            return AgentFailure(
                agent_id=self._id,
                error=err.message,
                error_code=err.code,
                failure_stage=FailureStage.EXEC,
                metrics=_metrics(),
            )

        tokens = call.input_tokens + call.output_tokens
        usd = usage_cost(call.input_tokens, call.output_tokens)
        try:
            parsed = _RawResponse.model_validate(json.loads(call.content))
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            logger.warning(
                "event=llm_review_unparseable agent=%s error=%s", self._id, exc
            )
            return AgentFailure(
                agent_id=self._id,
                error=f"unparseable model output: {exc}",
                error_code=AgentErrorCode.PARSE_ERROR,
                failure_stage=FailureStage.POSTPROCESS,
                metrics=_metrics(tokens, usd),
            )

        findings: list[Finding] = []
        for raw in parsed.findings:
            try:
                findings.append(
                    Finding(
                        severity=raw.severity,
                        file=raw.file,
                        line=raw.line,
                        message=raw.message,
                        suggestion=raw.suggestion,
                        rule_id=raw.rule_id,
                        source_agent=self._id,
                        metadata={"model": call.model},
                    )
                )
            except PydanticValidationError:
                logger.info(
                    "event=llm_finding_dropped agent=%s file=%s", self._id, raw.file
                )
        return AgentSuccess(
            agent_id=self._id,
            findings=findings,
            metrics=_metrics(tokens, usd),
        )
