"""Console trace handler: one log line per pipeline event."""

from __future__ import annotations

import logging
from typing import Any

from review_router.observability.events import TraceEvent

logger = logging.getLogger(__name__)

# Keys printed first, in this order, when present.
_LEADING_KEYS = ("pass", "agent_id", "status", "cached")


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    if value is None:
        return "-"
    return str(value)


class ConsoleTraceHandler:
    """Writes events as ``trace=<type> id=<trace_id> key=value ...``.

    Errors and failed agents log at WARNING so that a CI runner
    annotates them; everything else is INFO.
    """

    @property
    def name(self) -> str:
        return "console"

    def render(self, event: TraceEvent) -> str:
        data = event.data
        keys = [k for k in _LEADING_KEYS if k in data]
        keys += sorted(k for k in data if k not in _LEADING_KEYS)
        fields = " ".join(f"{k}={_format_value(data[k])}" for k in keys)
        head = f"trace={event.type} id={event.trace_id}"
        return f"{head} {fields}" if fields else head

    async def handle(self, event: TraceEvent) -> None:
        failed = event.type == "error" or event.data.get("status") in (
            "failure",
            "error",
        )
        logger.log(logging.WARNING if failed else logging.INFO, self.render(event))
