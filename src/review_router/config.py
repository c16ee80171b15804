"""Environment settings and the review configuration schema."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, NoDecode

from review_router.constants import (
    CACHE_DEFAULT_DIR,
    CACHE_DEFAULT_TTL_HOURS,
    CONFIG_HASH_LENGTH,
    DEFAULT_AGENT_TIMEOUT_SECONDS,
    DEFAULT_MAX_ANNOTATIONS,
    DEFAULT_MAX_DIFF_LINES,
    DEFAULT_MAX_FILES,
    DEFAULT_MAX_INLINE_COMMENTS,
    DEFAULT_MAX_TOKENS_PER_PR,
    DEFAULT_MAX_USD_PER_PR,
    DEFAULT_MONTHLY_BUDGET_USD,
    MAX_PARALLELISM_CAP,
    Severity,
)
from review_router.errors import ConfigError, ConfigErrorCode
from review_router.results import Err, Ok, Result

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # Cache
    review_cache_dir: Path = Path(CACHE_DEFAULT_DIR)
    cache_enabled: bool = True
    cache_ttl_hours: float = CACHE_DEFAULT_TTL_HOURS

    # Execution
    max_parallelism: int = MAX_PARALLELISM_CAP
    agent_timeout_seconds: float = DEFAULT_AGENT_TIMEOUT_SECONDS
    run_deadline_seconds: float | None = None

    # LLM Provider
    litellm_model: str = "openai/gpt-4.1-mini"
    llm_timeout_seconds: int = 60

    # Budget bookkeeping (spend so far this month, fed in by the CI wrapper)
    monthly_spend_usd: float = 0.0

    # Logging
    log_level: str = "INFO"
    trace_enabled: bool = True

    # Agent env passthrough (comma-separated extra variable names)
    agent_env_allowlist: Annotated[list[str], NoDecode] = []

    @field_validator("agent_env_allowlist", mode="before")
    @classmethod
    def _parse_allowlist(cls, v: Any) -> Any:
        """Accept comma-separated string or JSON array."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("max_parallelism")
    @classmethod
    def _clamp_parallelism(cls, v: int) -> int:
        if v < 1:
            msg = "max_parallelism must be at least 1"
            raise ValueError(msg)
        if v > MAX_PARALLELISM_CAP:
            logger.warning(
                "event=parallelism_clamped requested=%d cap=%d",
                v,
                MAX_PARALLELISM_CAP,
            )
            return MAX_PARALLELISM_CAP
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "extra": "ignore",
    }


# ── Review Configuration (.ai-review.yml) ────────────────


class PassConfig(BaseModel):
    name: str
    agents: list[str] = Field(min_length=1)
    enabled: bool = True
    required: bool = False


class Limits(BaseModel):
    max_files: int = Field(default=DEFAULT_MAX_FILES, ge=0)
    max_diff_lines: int = Field(default=DEFAULT_MAX_DIFF_LINES, ge=0)
    max_tokens_per_pr: int = Field(default=DEFAULT_MAX_TOKENS_PER_PR, ge=0)
    max_usd_per_pr: float = Field(default=DEFAULT_MAX_USD_PER_PR, ge=0)
    monthly_budget_usd: float = Field(default=DEFAULT_MONTHLY_BUDGET_USD, ge=0)
    max_wall_seconds: float | None = Field(default=None, gt=0)


class Gating(BaseModel):
    enabled: bool = False
    fail_on_severity: Severity = Severity.ERROR


class Reporting(BaseModel):
    max_inline_comments: int = Field(default=DEFAULT_MAX_INLINE_COMMENTS, ge=0)
    max_annotations: int = Field(default=DEFAULT_MAX_ANNOTATIONS, ge=0)


class PathFilters(BaseModel):
    include: list[str] = Field(default_factory=lambda: list[str]())
    exclude: list[str] = Field(default_factory=lambda: list[str]())


class Models(BaseModel):
    default: str | None = None
    provider: Literal["anthropic", "openai", "azure-openai", "ollama"] | None = None


def _default_passes() -> list[PassConfig]:
    return [PassConfig(name="static", agents=["pattern"], required=True)]


class ReviewConfig(BaseModel):
    """Validated review configuration."""

    version: int = 1
    trusted_only: bool = True
    fork_allowlist: list[str] = Field(default_factory=lambda: list[str]())
    passes: list[PassConfig] = Field(default_factory=_default_passes)
    limits: Limits = Field(default_factory=Limits)
    gating: Gating = Field(default_factory=Gating)
    reporting: Reporting = Field(default_factory=Reporting)
    path_filters: PathFilters = Field(default_factory=PathFilters)
    models: Models = Field(default_factory=Models)
    agent_timeouts: dict[str, float] = Field(
        default_factory=lambda: dict[str, float]()
    )

    @field_validator("passes")
    @classmethod
    def _unique_pass_names(cls, v: list[PassConfig]) -> list[PassConfig]:
        seen: set[str] = set()
        for p in v:
            if p.name in seen:
                msg = f"duplicate pass name: {p.name}"
                raise ValueError(msg)
            seen.add(p.name)
        return v

    def config_hash(self) -> str:
        return hash_config(self.model_dump(mode="json"))


DEFAULT_CONFIG: dict[str, Any] = ReviewConfig().model_dump(mode="json")


def hash_config(config: Any) -> str:
    """Stable short hash of a JSON-serializable config (sorted keys)."""
    payload = json.dumps(config, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return digest[:CONFIG_HASH_LENGTH]


def deep_merge(
    base: dict[str, Any], override: dict[str, Any]
) -> dict[str, Any]:
    """Recursively merge mappings; lists and scalars in override win."""
    merged = dict(base)
    for key, value in override.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = deep_merge(existing, value)  # pyright: ignore[reportUnknownArgumentType]
        else:
            merged[key] = value
    return merged


def parse_review_config(
    raw: Any, *, source: str = "<memory>"
) -> Result[ReviewConfig, ConfigError]:
    """Merge raw mapping over defaults and validate."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        return Err(
            ConfigError(
                "Configuration root must be a mapping",
                ConfigErrorCode.INVALID_SCHEMA,
                {"path": source, "expected": "mapping", "actual": type(raw).__name__},
            )
        )
    merged = deep_merge(DEFAULT_CONFIG, raw)  # pyright: ignore[reportUnknownArgumentType]
    try:
        return Ok(ReviewConfig.model_validate(merged))
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field_path = ".".join(str(p) for p in first.get("loc", ()))
        code = (
            ConfigErrorCode.MISSING_FIELD
            if first.get("type") == "missing"
            else ConfigErrorCode.INVALID_SCHEMA
        )
        return Err(
            ConfigError(
                f"Invalid configuration: {first.get('msg', exc)}",
                code,
                {"path": source, "field": field_path},
                cause=exc,
            )
        )


def load_review_config(path: Path) -> Result[ReviewConfig, ConfigError]:
    """Load ``.ai-review.yml`` from disk."""
    if not path.is_file():
        return Err(
            ConfigError(
                f"Configuration file not found: {path}",
                ConfigErrorCode.FILE_NOT_FOUND,
                {"path": str(path)},
            )
        )
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError, UnicodeDecodeError) as exc:
        return Err(
            ConfigError(
                f"Failed to parse configuration: {exc}",
                ConfigErrorCode.PARSE_ERROR,
                {"path": str(path)},
                cause=exc,
            )
        )
    result = parse_review_config(raw, source=str(path))
    if isinstance(result, Ok):
        logger.info(
            "event=config_loaded path=%s passes=%d hash=%s",
            path,
            len(result.value.passes),
            result.value.config_hash(),
        )
    return result
