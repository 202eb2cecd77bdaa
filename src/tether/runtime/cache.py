"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Response cache with TTL expiry, LRU eviction and best-effort durable persistence.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..storage import KeyValueStore, StorageError, StorageQuotaError, load_json, save_json
from .contracts import CachePolicy

logger = logging.getLogger("tether.cache")

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(slots=True)
class CacheEntry:
    """One cached response with expiry and access bookkeeping."""

    data: Any
    created_at: float
    expires_at: float
    hits: int = 0
    last_access: float = 0.0


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Point-in-time cache statistics."""

    size: int
    hits: int
    misses: int
    hit_rate: float
    oldest_entry: float | None


class _PersistedEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: Any = None
    timestamp: float
    created_at: float | None = None
    expires_at: float
    hits: int = Field(default=0, ge=0)


class _PersistedCache(BaseModel):
    model_config = ConfigDict(extra="ignore")

    entries: dict[str, _PersistedEntry] = Field(default_factory=dict)
    last_cleanup: float | None = None


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return _WHITESPACE_RE.sub(" ", value.strip().lower())
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def make_cache_key(kind: str, payload: Any) -> str:
    """
    Build a deterministic cache key from operation kind and normalized input.

    Strings are lowercased, stripped and whitespace-collapsed; mappings are
    serialized with sorted keys before hashing.
    """
    normalized = json.dumps(
        _normalize(payload), ensure_ascii=True, sort_keys=True, default=str
    )
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return f"{kind}:{digest}"


def estimate_warming_size(max_size: int, current_size: int) -> int:
    """Number of entries to pre-warm: 30% of capacity, bounded by free space."""
    budget = int(max_size * 0.3)
    available = max(0, max_size - current_size)
    return max(0, min(budget, available))


class ResponseCache:
    """
    Key-addressed response store with TTL expiry and LRU eviction.

    Reads never raise. Persistence failures are logged and swallowed; the
    in-memory view stays authoritative for this process.
    """

    def __init__(
        self,
        policy: CachePolicy | None = None,
        *,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._policy = policy or CachePolicy()
        if self._policy.max_size < 1:
            raise ValueError("max_size must be >= 1")
        if self._policy.ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        self._store = store if self._policy.persist else None
        self._clock = clock
        self._rows: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        if self._store is not None:
            self._load()

    @property
    def policy(self) -> CachePolicy:
        return self._policy

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, key: str) -> Any | None:
        """Return cached data, or `None` on miss or expiry."""
        row = self._rows.get(key)
        if row is None:
            self._misses += 1
            return None

        now = self._clock()
        if now > row.expires_at:
            del self._rows[key]
            self._misses += 1
            self._save()
            return None

        row.hits += 1
        row.last_access = now
        self._rows.move_to_end(key)
        self._hits += 1
        return row.data

    def set(self, key: str, data: Any) -> None:
        """Store data under `key`, evicting the least-recently-used entry when full."""
        if key not in self._rows and len(self._rows) >= self._policy.max_size:
            self._evict_lru()

        now = self._clock()
        self._rows[key] = CacheEntry(
            data=data,
            created_at=now,
            expires_at=now + self._policy.ttl_s,
            last_access=now,
        )
        self._rows.move_to_end(key)
        self._save()

    def has(self, key: str) -> bool:
        """Whether a live entry exists; does not count as an access."""
        row = self._rows.get(key)
        if row is None:
            return False
        if self._clock() > row.expires_at:
            del self._rows[key]
            self._save()
            return False
        return True

    def peek(self, key: str) -> CacheEntry | None:
        """Return the raw entry without touching recency or hit counters."""
        return self._rows.get(key)

    def delete(self, key: str) -> None:
        if self._rows.pop(key, None) is not None:
            self._save()

    def clear(self) -> None:
        """Drop all entries, reset statistics and remove the persisted record."""
        self._rows.clear()
        self._hits = 0
        self._misses = 0
        if self._store is None:
            return
        try:
            self._store.remove_item(self._policy.storage_key)
        except StorageError:
            logger.exception("Failed to clear persisted cache")

    def warm(self, entries: Iterable[tuple[str, Any]]) -> int:
        """Pre-populate keys that are not cached yet; returns how many were added."""
        added = 0
        for key, data in entries:
            if self.has(key):
                continue
            self.set(key, data)
            added += 1
        logger.info("Cache warmed with %d entries (size=%d)", added, len(self._rows))
        return added

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        oldest = min((row.last_access for row in self._rows.values()), default=None)
        return CacheStats(
            size=len(self._rows),
            hits=self._hits,
            misses=self._misses,
            hit_rate=(self._hits / total) if total else 0.0,
            oldest_entry=oldest,
        )

    def _evict_lru(self) -> None:
        key, _ = self._rows.popitem(last=False)
        logger.debug("Evicted least-recently-used entry %s", key)

    def _load(self) -> None:
        assert self._store is not None
        try:
            raw = load_json(self._store, self._policy.storage_key)
            if raw is None:
                return
            record = _PersistedCache.model_validate(raw)
        except (StorageError, ValidationError):
            logger.exception("Failed to load persisted cache; starting empty")
            self._rows.clear()
            return

        now = self._clock()
        expired = 0
        live = sorted(record.entries.items(), key=lambda item: item[1].timestamp)
        for key, row in live:
            if now > row.expires_at:
                expired += 1
                continue
            self._rows[key] = CacheEntry(
                data=row.data,
                created_at=row.created_at if row.created_at is not None else row.timestamp,
                expires_at=row.expires_at,
                hits=row.hits,
                last_access=row.timestamp,
            )
        while len(self._rows) > self._policy.max_size:
            self._rows.popitem(last=False)

        logger.info(
            "Loaded %d cache entries from storage (%d expired entries cleared)",
            len(self._rows),
            expired,
        )
        if expired:
            self._save()

    def _snapshot(self) -> dict[str, Any]:
        return {
            "entries": {
                key: {
                    "data": row.data,
                    "timestamp": row.last_access,
                    "created_at": row.created_at,
                    "expires_at": row.expires_at,
                    "hits": row.hits,
                }
                for key, row in self._rows.items()
            },
            "last_cleanup": self._clock(),
        }

    def _save(self) -> None:
        if self._store is None:
            return
        try:
            save_json(self._store, self._policy.storage_key, self._snapshot())
            return
        except StorageQuotaError:
            logger.warning("Storage quota exceeded; dropping oldest half of the cache")
        except StorageError:
            logger.exception("Failed to persist cache")
            return

        for _ in range(len(self._rows) // 2):
            self._rows.popitem(last=False)
        try:
            save_json(self._store, self._policy.storage_key, self._snapshot())
        except StorageError:
            logger.exception("Failed to persist cache after dropping entries")
