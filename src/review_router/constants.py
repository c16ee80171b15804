"""Shared constants - single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so JSON payloads, cache files and
log lines work unchanged.
"""

from __future__ import annotations

import math
from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class Severity(StrEnum):
    """Finding severity, ordered info < warning < error."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


SEVERITY_RANK: dict[str, int] = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
}


class Provenance(StrEnum):
    """Whether a finding came from a successful or failed agent run."""

    COMPLETE = "complete"
    PARTIAL = "partial"


class AgentStatus(StrEnum):
    """Discriminator values for the AgentResult union."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class FailureStage(StrEnum):
    """Where in an agent's lifecycle a failure happened."""

    PREFLIGHT = "preflight"
    EXEC = "exec"
    POSTPROCESS = "postprocess"
    TIMEOUT = "timeout"


class FileStatus(StrEnum):
    """Change status of a file in the pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class RunStatus(StrEnum):
    """Overall outcome recorded in the run summary.

    ``failure`` means the review ran and the gate tripped; ``error``
    means the run was aborted before or during execution.
    """

    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"
    SKIPPED = "skipped"


# ── Skip Reasons ─────────────────────────────────────────

SKIP_PASS_DISABLED = "pass disabled"
SKIP_BUDGET_EXHAUSTED = "budget exhausted"
SKIP_NO_APPLICABLE_FILES = "no applicable files"

# ── Cache ────────────────────────────────────────────────

CACHE_SCHEMA_VERSION = 2
CACHE_KEY_PREFIX = f"ai-review-v{CACHE_SCHEMA_VERSION}"
CACHE_DEFAULT_DIR = ".ai-review-cache"
CACHE_DEFAULT_TTL_HOURS = 24
CONFIG_HASH_LENGTH = 16

# ── Concurrency ──────────────────────────────────────────

MAX_PARALLELISM_CAP = 4
DEFAULT_AGENT_TIMEOUT_SECONDS = 300
ISOLATED_KILL_GRACE_SECONDS = 1.0

# ── Budget Defaults ──────────────────────────────────────

DEFAULT_MAX_FILES = 50
DEFAULT_MAX_DIFF_LINES = 2000
DEFAULT_MAX_TOKENS_PER_PR = 12_000
DEFAULT_MAX_USD_PER_PR = 1.0
DEFAULT_MONTHLY_BUDGET_USD = 100.0

INPUT_COST_PER_1K_TOKENS = 0.01
OUTPUT_COST_PER_1K_TOKENS = 0.03
OUTPUT_TOKEN_RATIO = 0.2

# ── Reporting Bounds ─────────────────────────────────────

DEFAULT_MAX_INLINE_COMMENTS = 20
DEFAULT_MAX_ANNOTATIONS = 50
MESSAGE_PREFIX_CHARS = 80
FINGERPRINT_LENGTH = 16

# ── Circuit Breaker Configuration ────────────────────────

CB_LLM_FAILURE_THRESHOLD = 5
CB_LLM_RECOVERY_TIMEOUT = 30

# ── Retry Strategy ───────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_WAIT = 2
RETRY_MAX_WAIT = 30

# ── LLM Output ───────────────────────────────────────────

LLM_MAX_OUTPUT_TOKENS = 4096
LLM_MAX_PATCH_CHARS = 40_000

# ── Error Wire Format ────────────────────────────────────

MAX_CAUSE_DEPTH = 10
ERROR_TRUNCATION_CHARS = 200

# ── Run Summary ──────────────────────────────────────────

SUMMARY_SCHEMA_VERSION = 1

# ── Token Estimation ────────────────────────────────────

CHARS_PER_TOKEN_ESTIMATE = 4


def estimate_tokens(text: str) -> int:
    """Rough token estimate using chars-per-token ratio, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN_ESTIMATE)
