"""Deterministic cache keys.

The schema version is part of the key prefix, so entries written by an
incompatible release are simply never looked up.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from review_router.constants import CACHE_KEY_PREFIX

_KEY_RE = re.compile(r"^ai-review-v(\d+)-(\d+)-([a-f0-9]+)$")
_KEY_HASH_LENGTH = 16


@dataclass(frozen=True)
class CacheKeyInputs:
    pr_number: int
    head_sha: str
    config_hash: str
    agent_id: str
    model: str = ""


@dataclass(frozen=True)
class ParsedCacheKey:
    version: int
    pr_number: int
    digest: str


def generate_cache_key(inputs: CacheKeyInputs) -> str:
    """``ai-review-v{N}-{pr}-{sha256(pr:head:config:agent:model)[:16]}``.

    ``model`` is the model the run would call, environment default
    included.
    """
    data = (
        f"{inputs.pr_number}:{inputs.head_sha}:"
        f"{inputs.config_hash}:{inputs.agent_id}:{inputs.model}"
    )
    digest = hashlib.sha256(data.encode("utf-8")).hexdigest()[:_KEY_HASH_LENGTH]
    return f"{CACHE_KEY_PREFIX}-{inputs.pr_number}-{digest}"


def restore_key_prefix(pr_number: int) -> str:
    """Prefix shared by every current-schema key for one PR."""
    return f"{CACHE_KEY_PREFIX}-{pr_number}-"


def parse_cache_key(key: str) -> ParsedCacheKey | None:
    match = _KEY_RE.match(key)
    if match is None:
        return None
    return ParsedCacheKey(
        version=int(match.group(1)),
        pr_number=int(match.group(2)),
        digest=match.group(3),
    )


def is_valid_cache_key(key: str) -> bool:
    """True for keys safe to use as a flat filename under the cache root."""
    return parse_cache_key(key) is not None
