"""Tests for the cache-then-compute agent runner."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from review_router.cache.keys import CacheKeyInputs, generate_cache_key
from review_router.cache.runner import CachedAgentRunner
from review_router.cache.store import FileCacheStore
from review_router.constants import FailureStage
from review_router.models import AgentFailure, AgentResult, AgentSuccess

KEY = generate_cache_key(CacheKeyInputs(1, "sha", "cfg", "agent"))


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_invocation(tmp_path: Path) -> None:
    runner = CachedAgentRunner(FileCacheStore(tmp_path))
    calls = 0

    async def _compute() -> AgentResult:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.05)
        return AgentSuccess(agent_id="agent")

    first, second = await asyncio.gather(
        runner.run(KEY, _compute), runner.run(KEY, _compute)
    )
    assert calls == 1
    assert first.result is second.result


@pytest.mark.asyncio
async def test_success_cached_for_next_run(tmp_path: Path) -> None:
    store = FileCacheStore(tmp_path)
    calls = 0

    async def _compute() -> AgentResult:
        nonlocal calls
        calls += 1
        return AgentSuccess(agent_id="agent")

    miss = await CachedAgentRunner(store).run(KEY, _compute)
    hit = await CachedAgentRunner(store).run(KEY, _compute)
    assert miss.cached is False
    assert hit.cached is True
    assert hit.result == miss.result
    assert calls == 1


@pytest.mark.asyncio
async def test_failures_not_cached(tmp_path: Path) -> None:
    store = FileCacheStore(tmp_path)

    async def _compute() -> AgentResult:
        return AgentFailure(
            agent_id="agent", error="boom", failure_stage=FailureStage.EXEC
        )

    await CachedAgentRunner(store).run(KEY, _compute)
    assert store.get(KEY) is None


@pytest.mark.asyncio
async def test_without_store_always_computes() -> None:
    runner = CachedAgentRunner()
    calls = 0

    async def _compute() -> AgentResult:
        nonlocal calls
        calls += 1
        return AgentSuccess(agent_id="agent")

    await runner.run(KEY, _compute)
    await runner.run(KEY, _compute)
    assert calls == 2


class _BrokenStore(FileCacheStore):
    def get(self, key: str) -> AgentResult | None:
        msg = "disk on fire"
        raise RuntimeError(msg)

    def put(self, key: str, result: AgentResult) -> bool:
        msg = "disk on fire"
        raise RuntimeError(msg)


@pytest.mark.asyncio
async def test_store_errors_fall_back_to_compute(tmp_path: Path) -> None:
    runner = CachedAgentRunner(_BrokenStore(tmp_path))
    calls = 0

    async def _compute() -> AgentResult:
        nonlocal calls
        calls += 1
        return AgentSuccess(agent_id="agent")

    outcome = await runner.run(KEY, _compute)
    assert outcome.cached is False
    assert outcome.result == AgentSuccess(agent_id="agent")
    assert calls == 1


@pytest.mark.asyncio
async def test_undecodable_entry_recomputes(tmp_path: Path) -> None:
    (tmp_path / f"{KEY}.json").write_bytes(b'{"key": "\xff\xfe truncated')

    async def _compute() -> AgentResult:
        return AgentSuccess(agent_id="agent")

    outcome = await CachedAgentRunner(FileCacheStore(tmp_path)).run(KEY, _compute)
    assert outcome.cached is False
