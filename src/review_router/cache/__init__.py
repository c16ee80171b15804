"""Fingerprint-keyed agent result cache."""

from review_router.cache.coalesce import KeyedCoalescer
from review_router.cache.keys import (
    CacheKeyInputs,
    generate_cache_key,
    parse_cache_key,
)
from review_router.cache.runner import CachedAgentRunner, CachedOutcome
from review_router.cache.store import CacheEntry, FileCacheStore

__all__ = [
    "CacheEntry",
    "CacheKeyInputs",
    "CachedAgentRunner",
    "CachedOutcome",
    "FileCacheStore",
    "KeyedCoalescer",
    "generate_cache_key",
    "parse_cache_key",
]
