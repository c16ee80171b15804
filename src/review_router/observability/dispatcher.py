"""Fan-out of trace events to pluggable handlers."""

from __future__ import annotations

import logging
from typing import Protocol

from review_router.observability.events import TraceEvent

logger = logging.getLogger(__name__)

# Consecutive errors after which a handler stops receiving events.
HANDLER_FAILURE_LIMIT = 3


class TraceHandler(Protocol):
    """A trace backend. Handlers are keyed by ``name``."""

    @property
    def name(self) -> str: ...

    async def handle(self, event: TraceEvent) -> None: ...


class TraceDispatcher:
    """Delivers each event to every registered handler, in order.

    Delivery is best-effort: a handler error is logged and never
    reaches the review run. A handler that fails
    ``HANDLER_FAILURE_LIMIT`` times in a row is muted for the rest of
    the run; a success in between resets its count.
    """

    def __init__(self, failure_limit: int = HANDLER_FAILURE_LIMIT) -> None:
        self._handlers: dict[str, TraceHandler] = {}
        self._failures: dict[str, int] = {}
        self._failure_limit = failure_limit

    def register(self, handler: TraceHandler) -> None:
        """First registration of a name wins; later ones are ignored."""
        if handler.name in self._handlers:
            logger.debug("event=trace_handler_duplicate handler=%s", handler.name)
            return
        self._handlers[handler.name] = handler
        self._failures[handler.name] = 0

    def is_muted(self, name: str) -> bool:
        return self._failures.get(name, 0) >= self._failure_limit

    async def emit(self, event: TraceEvent) -> None:
        for name, handler in self._handlers.items():
            if self.is_muted(name):
                continue
            try:
                await handler.handle(event)
            except Exception:  # noqa: BLE001
                self._failures[name] += 1
                logger.warning(
                    "event=trace_handler_error handler=%s trace_type=%s "
                    "consecutive=%d",
                    name,
                    event.type,
                    self._failures[name],
                    exc_info=True,
                )
                if self.is_muted(name):
                    logger.warning("event=trace_handler_muted handler=%s", name)
            else:
                self._failures[name] = 0

    def get(self, name: str) -> TraceHandler | None:
        return self._handlers.get(name)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)
