"""Agent environment construction.

Agents receive an allowlisted environment only. Posting credentials
(GitHub / Azure DevOps tokens) are never passed to an agent, even when
an agent's own allowlist names them.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

COMMON_AGENT_ENV_ALLOWLIST: tuple[str, ...] = (
    "PATH",
    "HOME",
    "TMPDIR",
    "TMP",
    "TEMP",
    "LANG",
    "LC_ALL",
    "TERM",
    "NO_COLOR",
    "CI",
)

LLM_AGENT_ENV_ALLOWLIST: tuple[str, ...] = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_DEPLOYMENT",
    "OLLAMA_BASE_URL",
    "OLLAMA_MODEL",
    "MODEL",
)

_TOKEN_NAMES = frozenset({
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "GITHUB_PAT",
    "GH_PAT",
    "AZURE_DEVOPS_PAT",
    "ADO_TOKEN",
    "SYSTEM_ACCESSTOKEN",
    "REVIEWDOG_GITHUB_API_TOKEN",
})
_TOKEN_PATTERNS = (
    re.compile(r"^.*_TOKEN$", re.IGNORECASE),
    re.compile(r"^.*_PAT$", re.IGNORECASE),
)


def is_token_variable(name: str) -> bool:
    if name.upper() in _TOKEN_NAMES:
        return True
    return any(p.match(name) for p in _TOKEN_PATTERNS)


def strip_tokens(env: Mapping[str, str]) -> dict[str, str]:
    """Drop every posting-credential variable."""
    clean: dict[str, str] = {}
    stripped: list[str] = []
    for key, value in env.items():
        if is_token_variable(key):
            stripped.append(key)
        else:
            clean[key] = value
    if stripped:
        logger.info(
            "event=agent_env_tokens_stripped count=%d names=%s",
            len(stripped),
            ",".join(sorted(stripped)),
        )
    return clean


def build_agent_env(
    environ: Mapping[str, str],
    *,
    uses_llm: bool = False,
    extra_allowlist: Iterable[str] = (),
) -> dict[str, str]:
    """Pick allowlisted variables, then strip tokens unconditionally."""
    allow = set(COMMON_AGENT_ENV_ALLOWLIST)
    if uses_llm:
        allow.update(LLM_AGENT_ENV_ALLOWLIST)
    allow.update(extra_allowlist)
    picked = {k: v for k, v in environ.items() if k in allow}
    return strip_tokens(picked)
