"""Flat-file cache of agent results.

One JSON file per key under the cache root. Reads never raise: a
missing, expired, truncated or schema-incompatible entry is a miss.
Writes go to a temp file in the same directory and are renamed into
place so a concurrent reader sees either the old file or the new one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from review_router.cache.keys import is_valid_cache_key
from review_router.constants import CACHE_DEFAULT_TTL_HOURS, CACHE_SCHEMA_VERSION
from review_router.models import AgentResult, AgentResultAdapter

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """On-disk record; the key is stored for verification on read."""

    key: str
    schema_version: int = CACHE_SCHEMA_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime
    result: AgentResult


class FileCacheStore:
    """Read-through TTL cache of :data:`AgentResult` values."""

    def __init__(
        self,
        root: Path,
        *,
        ttl: timedelta = timedelta(hours=CACHE_DEFAULT_TTL_HOURS),
    ) -> None:
        self._root = root
        self._ttl = ttl

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def get(self, key: str) -> AgentResult | None:
        """Return the cached result or None on any kind of miss."""
        if not is_valid_cache_key(key):
            logger.debug("event=cache_key_rejected key=%s", key)
            return None
        path = self._path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            logger.warning("event=cache_read_failed key=%s", key, exc_info=True)
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            logger.info(
                "event=cache_entry_invalid key=%s errors=%d",
                key,
                exc.error_count(),
            )
            return None

        if entry.key != key or entry.schema_version != CACHE_SCHEMA_VERSION:
            logger.info("event=cache_entry_mismatch key=%s", key)
            return None
        if entry.expires_at <= datetime.now(UTC):
            logger.debug("event=cache_entry_expired key=%s", key)
            return None
        return entry.result

    def put(self, key: str, result: AgentResult) -> bool:
        """Atomically write an entry. Returns False if the write failed."""
        if not is_valid_cache_key(key):
            logger.warning("event=cache_key_rejected key=%s", key)
            return False
        now = datetime.now(UTC)
        entry = CacheEntry(
            key=key,
            created_at=now,
            expires_at=now + self._ttl,
            result=result,
        )
        payload = entry.model_dump_json()
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{key}.", suffix=".tmp", dir=self._root
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, self._path_for(key))
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError:
            logger.warning("event=cache_write_failed key=%s", key, exc_info=True)
            return False
        logger.debug("event=cache_put key=%s", key)
        return True

    def prune(self) -> int:
        """Delete expired, unreadable and stale temp files. Returns count."""
        if not self._root.is_dir():
            return 0
        removed = 0
        now = datetime.now(UTC)
        for path in self._root.iterdir():
            if path.name.endswith(".tmp"):
                path.unlink(missing_ok=True)
                removed += 1
                continue
            if path.suffix != ".json":
                continue
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                expires = datetime.fromisoformat(data["expires_at"])
                stale = expires <= now
            except (OSError, ValueError, KeyError, TypeError):
                stale = True
            if stale:
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info("event=cache_pruned removed=%d", removed)
        return removed
