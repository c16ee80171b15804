"""Singleton logging configuration for CI runs, in two phases.

Phase 1: setup_logging() - call BEFORE litellm is imported.
  Sets LITELLM_LOG, installs one stderr handler on the root logger and
  quiets third-party loggers. On a recognised CI runner, WARNING and
  ERROR records are prefixed with the runner's annotation command so
  they surface in the job UI.

Phase 2: cleanup_third_party_handlers() - call AFTER agent modules load.
  Clears litellm's duplicate StreamHandlers added at import time.

Both phases are idempotent (guarded by module-level flags).
"""

import logging
import os
from collections.abc import Mapping

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

GITHUB = "github"
AZURE = "azure"

_ANNOTATION_PREFIXES: dict[str, dict[int, str]] = {
    GITHUB: {
        logging.WARNING: "::warning::",
        logging.ERROR: "::error::",
    },
    AZURE: {
        logging.WARNING: "##vso[task.logissue type=warning]",
        logging.ERROR: "##vso[task.logissue type=error]",
    },
}

# Third-party loggers to suppress to WARNING
_SUPPRESSED_LOGGERS = (
    "LiteLLM",
    "LiteLLM Router",
    "LiteLLM Proxy",
    "openai._base_client",
    "httpx",
    "asyncio",
)

_LITELLM_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy")

_phase1_done = False
_phase2_done = False


def detect_ci_provider(environ: Mapping[str, str]) -> str | None:
    """Return ``"github"``, ``"azure"`` or None from runner variables."""
    if environ.get("GITHUB_ACTIONS", "").lower() == "true":
        return GITHUB
    if environ.get("TF_BUILD", "").lower() == "true":
        return AZURE
    return None


class CIAnnotationFormatter(logging.Formatter):
    """Standard format, plus an annotation prefix for WARNING and up.

    Annotation commands are line-based, so multi-line messages
    (tracebacks included) are folded with the ``%0A`` escape both
    runners understand.
    """

    def __init__(self, provider: str | None = None) -> None:
        super().__init__(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
        self._prefixes = _ANNOTATION_PREFIXES.get(provider or "", {})

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if not self._prefixes or record.levelno < logging.WARNING:
            return text
        level = logging.ERROR if record.levelno >= logging.ERROR else logging.WARNING
        return self._prefixes[level] + text.replace("\n", "%0A")


def setup_logging(
    level: str = "INFO", *, ci_provider: str | None = None
) -> None:
    """Phase 1: Configure root logger and set env vars.

    Must be called BEFORE importing review_router.agents.llm_reviewer,
    which pulls in litellm. ``ci_provider`` defaults to detection from
    the environment. Idempotent - second call is a no-op.
    """
    global _phase1_done  # noqa: PLW0603
    if _phase1_done:
        return
    _phase1_done = True

    # litellm._logging reads this at import time to set handler level.
    os.environ.setdefault("LITELLM_LOG", "WARNING")

    provider = ci_provider or detect_ci_provider(os.environ)
    handler = logging.StreamHandler()
    handler.setFormatter(CIAnnotationFormatter(provider))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
    )

    for name in _SUPPRESSED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def cleanup_third_party_handlers() -> None:
    """Phase 2: Remove litellm's duplicate StreamHandlers.

    litellm adds its own handler to each of its loggers, so messages
    would print twice (once there, once via root propagation).

    Idempotent - second call is a no-op.
    """
    global _phase2_done  # noqa: PLW0603
    if _phase2_done:
        return
    _phase2_done = True

    for name in _LITELLM_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True
