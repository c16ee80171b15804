"""Tests for deterministic cache keys."""

from __future__ import annotations

from review_router.cache.keys import (
    CacheKeyInputs,
    generate_cache_key,
    is_valid_cache_key,
    parse_cache_key,
    restore_key_prefix,
)

INPUTS = CacheKeyInputs(
    pr_number=42, head_sha="abc123", config_hash="cfg", agent_id="pattern"
)


def test_key_is_deterministic() -> None:
    assert generate_cache_key(INPUTS) == generate_cache_key(INPUTS)


def test_key_format() -> None:
    key = generate_cache_key(INPUTS)
    assert key.startswith(restore_key_prefix(42))
    parsed = parse_cache_key(key)
    assert parsed is not None
    assert parsed.version == 2
    assert parsed.pr_number == 42
    assert len(parsed.digest) == 16


def test_every_input_changes_key() -> None:
    base = generate_cache_key(INPUTS)
    variants = [
        CacheKeyInputs(43, "abc123", "cfg", "pattern"),
        CacheKeyInputs(42, "def456", "cfg", "pattern"),
        CacheKeyInputs(42, "abc123", "other", "pattern"),
        CacheKeyInputs(42, "abc123", "cfg", "llm"),
        CacheKeyInputs(42, "abc123", "cfg", "pattern", "openai/gpt-4.1"),
    ]
    assert all(generate_cache_key(v) != base for v in variants)


def test_rejects_unsafe_keys() -> None:
    assert not is_valid_cache_key("../../etc/passwd")
    assert not is_valid_cache_key("ai-review-v2-42-NOTHEX")
    assert parse_cache_key("random") is None
