"""Cache-then-compute wrapper guaranteeing one live run per key."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from review_router.cache.coalesce import KeyedCoalescer
from review_router.cache.store import FileCacheStore
from review_router.models import AgentResult, AgentSuccess

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedOutcome:
    result: AgentResult
    cached: bool


class CachedAgentRunner:
    """Consults the file cache, coalesces concurrent misses per key.

    Only ``success`` results are written back; failures and skips are
    always recomputed on the next run.
    """

    def __init__(self, store: FileCacheStore | None = None) -> None:
        self._store = store
        self._coalescer = KeyedCoalescer[CachedOutcome]()

    @property
    def coalescer(self) -> KeyedCoalescer[CachedOutcome]:
        return self._coalescer

    async def _read(self, key: str) -> AgentResult | None:
        if self._store is None:
            return None
        try:
            return await asyncio.to_thread(self._store.get, key)
        except Exception:  # noqa: BLE001
            logger.warning("event=cache_lookup_failed key=%s", key, exc_info=True)
            return None

    async def _write(self, key: str, result: AgentSuccess) -> None:
        if self._store is None:
            return
        try:
            await asyncio.to_thread(self._store.put, key, result)
        except Exception:  # noqa: BLE001
            logger.warning("event=cache_write_failed key=%s", key, exc_info=True)

    async def run(
        self,
        key: str,
        compute: Callable[[], Awaitable[AgentResult]],
    ) -> CachedOutcome:
        """Serve ``key`` from the store, else compute it once.

        Store errors of any kind count as a miss; they never abort the
        run.
        """

        async def _lookup_or_compute() -> CachedOutcome:
            hit = await self._read(key)
            if hit is not None:
                logger.info("event=cache_hit key=%s agent=%s", key, hit.agent_id)
                return CachedOutcome(result=hit, cached=True)
            result = await compute()
            if isinstance(result, AgentSuccess):
                await self._write(key, result)
            return CachedOutcome(result=result, cached=False)

        return await self._coalescer.run(key, _lookup_or_compute)
